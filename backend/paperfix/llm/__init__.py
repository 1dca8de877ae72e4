"""
LLM Package

Structured extraction over a LangChain chat model (OpenAI by default).

Public API::

    from paperfix.llm import StructuredExtractionClient

    client = StructuredExtractionClient()
    result = await client.extract(text, language="nl")
"""

from paperfix.llm.extraction import StructuredExtractionClient
from paperfix.llm.gateway import GatewayResponse, LLMGateway

__all__ = [
    "GatewayResponse",
    "LLMGateway",
    "StructuredExtractionClient",
]
