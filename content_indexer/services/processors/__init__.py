"""
Content Processors Package

Modules:
--------
- chunker: Paragraph/sentence-aware chunking by token count
- embedder: Embedding generation using sentence-transformers
"""
