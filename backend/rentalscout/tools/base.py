from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, ValidationError

from rentalscout.core.errors import InvalidToolArgs


class ToolContext(BaseModel):
    """Caller scope handed to every tool execution."""
    user_id: Optional[str] = None
    session_id: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


class Tool(ABC):
    name: str = "base_tool"
    description: str = "Base tool description"
    parameters: Type[BaseModel] | None = None
    # Search tools feed the response's search metadata
    is_search: bool = False

    def to_openai_function_schema(self) -> Dict[str, Any]:
        """Convert tool to OpenAI function schema"""
        schema = {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
            }
        }
        if self.parameters:
            schema["function"]["parameters"] = self.parameters.model_json_schema()
        return schema

    def validate(self, arguments: Dict[str, Any]) -> BaseModel:
        if self.parameters is None:
            raise InvalidToolArgs(f"{self.name} declares no parameters")
        try:
            return self.parameters.model_validate(arguments)
        except ValidationError as e:
            problems = [
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ]
            raise InvalidToolArgs(f"Invalid arguments for {self.name}", errors=problems) from e

    @abstractmethod
    async def execute(self, args: BaseModel, context: ToolContext) -> Any:
        pass
