"""Certificate engine, batch coordinator and query surface."""
