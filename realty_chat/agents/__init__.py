"""
Conversation engine for the real-estate assistant.

This package contains the LangGraph-based orchestrator that classifies each
message, runs the lead capture flow or retrieval, and grounds generated
answers in the property and document corpus.
"""
