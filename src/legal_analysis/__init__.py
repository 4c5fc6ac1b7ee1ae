"""
Legal Analysis Pipeline
Automated analysis of legal documents: extraction, translation, classification,
domain review and report synthesis with bounded concurrency
"""

__version__ = "1.0.0"
__author__ = "Legal Tech Solutions"
__description__ = "Legal document analysis orchestrator with Claude on Amazon Bedrock"
