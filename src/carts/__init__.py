"""Cart calculation core: carts, totals and order materialization."""
