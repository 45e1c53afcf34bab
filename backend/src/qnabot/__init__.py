"""QnA bot backend."""
