"""recordQL execution layer: the psycopg connection pool and run_query."""
