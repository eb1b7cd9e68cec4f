"""Focus board for markdown project folders."""
