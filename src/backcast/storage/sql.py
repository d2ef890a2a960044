SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS resource (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    url TEXT NOT NULL,
    conditional_token TEXT NOT NULL DEFAULT '',
    last_polled_at TEXT,
    created_at TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_resource_url
ON resource(url);

CREATE INDEX IF NOT EXISTS idx_resource_last_polled_at
ON resource(last_polled_at);

CREATE TABLE IF NOT EXISTS edit (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    resource_id INTEGER NOT NULL REFERENCES resource(id),
    patch TEXT NOT NULL,
    fingerprint CHAR(40) NOT NULL,
    content_type TEXT NOT NULL DEFAULT '',
    etag TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_edit_resource_id
ON edit(resource_id, id);
"""
