"""Tool registry: validates, executes and records tool calls.

``ToolRegistry.run`` never raises. Unknown tools, malformed arguments and
failures inside a tool all come back as error records so the agent can hand
them to the model as tool results.
"""
import json
import time
from typing import Any, Dict, Iterable, List

import structlog

from rentalscout.core.errors import InvalidToolArgs, RentalScoutError
from rentalscout.search.hybrid import HybridRankingEngine
from rentalscout.services.llm import parse_arguments
from rentalscout.state.models import ToolCallRecord
from rentalscout.state.profiles import UserProfileStore
from rentalscout.tools.base import Tool, ToolContext
from rentalscout.tools.listings import GetPropertyDetailsTool
from rentalscout.tools.saved import GetSavedRentalsTool
from rentalscout.tools.search import SearchRentalsTool

logger = structlog.get_logger()

# Search results shown to the model; the caller gets every card via metadata
MODEL_RESULT_PREVIEW = 5


class ToolRegistry:
    def __init__(self, tools: Iterable[Tool]):
        self.tools: Dict[str, Tool] = {t.name: t for t in tools}

    @classmethod
    def default(cls, engine: HybridRankingEngine, profiles: UserProfileStore) -> "ToolRegistry":
        return cls([
            SearchRentalsTool(engine),
            GetPropertyDetailsTool(engine),
            GetSavedRentalsTool(profiles, engine),
        ])

    def declarations(self) -> List[Dict[str, Any]]:
        return [t.to_openai_function_schema() for t in self.tools.values()]

    async def run(self, call_id: str, name: str, raw_arguments: str | Dict[str, Any], context: ToolContext) -> ToolCallRecord:
        tool = self.tools.get(name)
        record = ToolCallRecord(call_id=call_id, name=name, is_search=bool(tool and tool.is_search))
        started = time.perf_counter()
        try:
            if tool is None:
                raise InvalidToolArgs(f"Unknown tool: {name}", available=sorted(self.tools))
            if isinstance(raw_arguments, dict):
                arguments = raw_arguments
            else:
                try:
                    arguments = parse_arguments(raw_arguments)
                except ValueError as e:
                    raise InvalidToolArgs(f"Arguments for {name} are not a JSON object: {e}") from e
            record.arguments = arguments

            args = tool.validate(arguments)
            record.arguments = args.model_dump(by_alias=True, exclude_none=True, mode="json")
            logger.info(f"Executing tool: {name}", args=record.arguments)
            raw_result = await tool.execute(args, context)
            # Sanitize result (convert datetimes to strings) for both LLM and caller
            record.result = json.loads(json.dumps(raw_result, default=str))
        except RentalScoutError as e:
            logger.warning("Tool failed", tool=name, kind=e.kind, error=e.message)
            record.error = e.to_dict()
        except Exception as e:
            logger.exception("Tool crashed", tool=name)
            record.error = {"kind": "ToolError", "message": str(e) or e.__class__.__name__}
        finally:
            record.duration_ms = round((time.perf_counter() - started) * 1000, 2)
        return record


def model_content(record: ToolCallRecord) -> str:
    """Tool result as fed back to the model, trimmed to save tokens."""
    if record.error:
        return json.dumps({"error": record.error["kind"], "message": record.error["message"]})
    result = record.result
    if record.is_search and isinstance(result, dict):
        top = result.get("results", [])[:MODEL_RESULT_PREVIEW]
        summary = f"Found {result.get('count', 0)} listings. Top IDs: {[r.get('id') for r in top]}. Full results sent to UI."
        return json.dumps({
            "summary": summary,
            "search_type": result.get("search_type"),
            "filters": result.get("filters"),
            "degraded": result.get("degraded", False),
            "top_results": top,
        }, default=str)
    return json.dumps(result, default=str)
