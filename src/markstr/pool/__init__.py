"""Pool funding (deposits) and spending (payout and escape withdrawals)."""
