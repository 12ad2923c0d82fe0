"""Content-addressed blob storage, SQLite database and the storage directory layout."""