"""Request shapes accepted at the transport boundary."""
import json
from typing import Any

from neonproxy.exceptions import InvalidRequest
from pydantic import BaseModel, ConfigDict, Field, ValidationError


class QueryRequest(BaseModel):
    """Body of `POST /sql`."""
    model_config = ConfigDict(extra='ignore')

    query: str = Field(min_length=1)
    params: list[Any] | None = None

    @property
    def args(self) -> list[Any]:
        return self.params or []


class QueryMessage(BaseModel):
    """Inbound WebSocket frame."""
    model_config = ConfigDict(extra='ignore')

    type: str
    query: str | None = None
    params: list[Any] | None = None

    @property
    def is_query(self) -> bool:
        return self.type == 'query' and bool(self.query)

    @property
    def args(self) -> list[Any]:
        return self.params or []


def _format_errors(exc: ValidationError) -> str:
    return '; '.join(
        f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}"
        for err in exc.errors()
    )


def parse_request(body: bytes | str) -> QueryRequest:
    """Parse and validate a `POST /sql` body.

    Raises
        InvalidRequest: If the body is not JSON or lacks a query string
    """
    try:
        return QueryRequest.model_validate(json.loads(body))
    except ValidationError as e:
        raise InvalidRequest(f'Invalid request body: {_format_errors(e)}') from e
    except ValueError as e:
        raise InvalidRequest(f'Invalid JSON body: {e}') from e


def parse_message(text: str | bytes) -> QueryMessage:
    """Parse and validate a WebSocket frame.

    Raises
        InvalidRequest: If the frame is not a JSON object with a `type`
    """
    try:
        return QueryMessage.model_validate(json.loads(text))
    except ValidationError as e:
        raise InvalidRequest(f'Invalid message: {_format_errors(e)}') from e
    except ValueError as e:
        raise InvalidRequest(f'Invalid JSON message: {e}') from e
