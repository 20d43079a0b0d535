"""Transfer-fee harvest, swap and holder distribution cycle."""
