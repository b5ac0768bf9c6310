"""
Ingestion pipeline for user-uploaded documents.

Modules
-------
config       – Pipeline-specific settings (chunk sizes, gates, fallbacks …)
schemas      – Pydantic models for documents, chunks and diagnostics
extractors   – PDF (pdfplumber + PyMuPDF), DOCX and plain-text extraction
normalizer   – Whitespace collapse and letter-spaced OCR repair
chunker      – Heading / bullet / sentence / window chunking with overlap
quality      – Persistence gate plus chunk, document and embedding metrics
embeddings   – Provider embeddings with hash and random fallbacks
vectordb     – ChromaDB cosine index over chunk embeddings
pipeline     – End-to-end orchestrator wiring everything together
"""
