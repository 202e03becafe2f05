"""SplitFlow finance backend."""
