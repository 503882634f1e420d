from yoyo import step

steps = [
    step(
        """
        CREATE TABLE IF NOT EXISTS mint_history (
            key TEXT PRIMARY KEY,
            value JSONB NOT NULL,
            updated_at TIMESTAMPTZ DEFAULT NOW()
        );
        """,
        """
        DROP TABLE IF EXISTS mint_history;
        """
    ),
]
