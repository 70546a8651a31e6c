from src.tools.registry import Tool, ToolContext
from src.tools.schemas import WebSearchInput


async def web_search(args: WebSearchInput, ctx: ToolContext) -> dict:
    results = await ctx.search.search(args.query, max_results=args.max_results)
    return {
        "type": "web_search",
        "query": args.query,
        "resultCount": len(results),
        "results": [result.to_dict() for result in results],
    }


WEB_SEARCH_TOOL = Tool(
    name="webSearch",
    description=(
        "Search the web for news, company announcements, litigation, licensing deals and market "
        "context that patent databases do not cover. Cite the returned URLs."
    ),
    args_schema=WebSearchInput,
    execute=web_search,
)
