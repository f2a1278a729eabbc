"""Application settings: Pydantic schema and env/YAML loader."""
