from agent.tools.google_search import (
    SEARCH_TOOL_NAME,
    build_google_search_tool,
    is_sentinel,
    search_google,
)

__all__ = [
    "SEARCH_TOOL_NAME",
    "build_google_search_tool",
    "is_sentinel",
    "search_google",
]
