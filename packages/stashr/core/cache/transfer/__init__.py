"""Archive transfer engine: chunked/blob uploads, streamed/segmented downloads."""
