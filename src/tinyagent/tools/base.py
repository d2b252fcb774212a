"""Base class for all tools."""

import inspect
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Type

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from tinyagent.cancellation import CancellationToken

DEFAULT_TOOL_TIMEOUT_MS = 30000


class ToolConfig(BaseModel):
    """Base configuration for tools."""

    timeout_ms: Optional[int] = Field(default=DEFAULT_TOOL_TIMEOUT_MS, ge=1)
    enabled: bool = Field(default=True)


class ToolDeclaration(BaseModel):
    """What the model adapter is told about a tool."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: Dict[str, Any] = Field(default_factory=dict)


class ToolContext(BaseModel):
    """Per-call context handed to a tool's execute body."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    execution_id: str = Field(description="Correlation id of the tool call")
    cancellation: CancellationToken = Field(default_factory=CancellationToken)
    thread_id: Optional[str] = None
    user_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class BaseTool(ABC):
    """Abstract base class for all tools.

    Subclasses set ``name`` and ``description`` and implement ``execute``.
    Override ``json_schema``, ``validate`` and ``parse`` when the tool takes
    structured input.
    """

    name: str
    description: str = ""

    def __init__(self, config: ToolConfig | None = None):
        self.config = config or ToolConfig()

    @property
    def json_schema(self) -> Dict[str, Any]:
        return {"type": "object", "properties": {}}

    def validate(self, input: Any) -> bool:
        """Check parsed arguments before execution."""
        return True

    def parse(self, input: Any) -> Any:
        """Convert validated arguments into what ``execute`` expects."""
        return input

    @abstractmethod
    async def execute(self, input: Any, context: ToolContext) -> Any:
        """Execute the tool.

        Args:
            input: Parsed arguments.
            context: Per-call context (cancellation token, correlation id, metadata).

        Returns:
            Tool output; raising marks the call as failed.
        """
        pass

    def declaration(self) -> ToolDeclaration:
        return ToolDeclaration(name=self.name, description=self.description, parameters=self.json_schema)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


class FunctionTool(BaseTool):
    """Tool backed by a plain or async function and a pydantic input model."""

    def __init__(
        self,
        name: str,
        description: str,
        func: Callable[..., Any],
        input_model: Optional[Type[BaseModel]] = None,
        config: ToolConfig | None = None,
    ):
        super().__init__(config)
        self.name = name
        self.description = description
        self.func = func
        self.input_model = input_model
        self._wants_context = len(inspect.signature(func).parameters) >= 2

    @property
    def json_schema(self) -> Dict[str, Any]:
        if self.input_model is None:
            return super().json_schema
        return self.input_model.model_json_schema()

    def validate(self, input: Any) -> bool:
        if self.input_model is None:
            return True
        try:
            self.input_model.model_validate(input)
        except PydanticValidationError:
            return False
        return True

    def parse(self, input: Any) -> Any:
        if self.input_model is None:
            return input
        return self.input_model.model_validate(input)

    async def execute(self, input: Any, context: ToolContext) -> Any:
        result = self.func(input, context) if self._wants_context else self.func(input)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, BaseModel):
            return result.model_dump(mode="json")
        return result


def define_tool(
    name: Optional[str] = None,
    description: Optional[str] = None,
    input_model: Optional[Type[BaseModel]] = None,
    timeout_ms: Optional[int] = DEFAULT_TOOL_TIMEOUT_MS,
) -> Callable[[Callable[..., Any]], FunctionTool]:
    """Decorator turning a function into a FunctionTool.

    The function receives the parsed input model (and optionally the
    ToolContext as a second argument). Name and description default to the
    function's name and the first line of its docstring.

    Example:
        class WeatherInput(BaseModel):
            city: str

        @define_tool(input_model=WeatherInput)
        async def get_weather(input: WeatherInput) -> dict:
            \"\"\"Current weather for a city.\"\"\"
            return {"city": input.city, "temp_c": 21}
    """

    def decorator(func: Callable[..., Any]) -> FunctionTool:
        doc = inspect.getdoc(func) or ""
        return FunctionTool(
            name=name or func.__name__,
            description=description if description is not None else doc.split("\n", 1)[0],
            func=func,
            input_model=input_model,
            config=ToolConfig(timeout_ms=timeout_ms),
        )

    return decorator
