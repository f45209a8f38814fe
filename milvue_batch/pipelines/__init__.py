"""Processing stages of a batch run: inventory, codec, upload, poll, download."""
