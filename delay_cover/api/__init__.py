"""HTTP surface: customer applications, oracle fulfillment callbacks and keeper endpoints."""
