"""HTTP API for the QnA bot."""
