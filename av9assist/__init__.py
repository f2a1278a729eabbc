"""
av9Assist — chat backend with multi-provider AI orchestration.

Packages:
- config: Pydantic settings from env / YAML
- llm: provider adapters, transport and the ProviderRouter
- chat: chat service, conversation store and FastAPI app
- observability: structured logging
"""

__version__ = "1.0.0"
