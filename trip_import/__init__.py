"""Trip document import engine: OCR, multi-provider extraction and import queue."""
