"""Payment signing, publisher submission, receipts and the URL allow-list."""
