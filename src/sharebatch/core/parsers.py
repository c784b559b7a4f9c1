"""
Result parsers.

Turn one request's part of a batch response (or a plain response) into a
value for the caller.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Union

from sharebatch.codec.decoder import ParsedPart
from sharebatch.errors import RequestResultParseError
from sharebatch.transport.interface import Response

# Parsers accept batch parts and plain responses alike
ResponseLike = Union[ParsedPart, Response]


class ResultParser(ABC):
    """Base class for per-request result parsers."""

    @abstractmethod
    async def parse(self, response: ResponseLike) -> Any:
        """
        Interpret a response.

        Raises:
            RequestResultParseError: If the response cannot be interpreted
        """
        pass

    @staticmethod
    def check_status(response: ResponseLike) -> None:
        if not response.ok:
            raise RequestResultParseError(
                f"Error making HttpClient request in queryable [{response.status}] "
                f"{response.status_text} ::> {response.text}",
                status=response.status,
            )

    @staticmethod
    def load_json(response: ResponseLike) -> Any:
        try:
            return json.loads(response.text)
        except ValueError as e:
            raise RequestResultParseError(
                f"Response body is not valid JSON: {e}",
                status=response.status,
            ) from e


class TextParser(ResultParser):
    """Returns the raw body text."""

    async def parse(self, response: ResponseLike) -> str:
        self.check_status(response)
        return response.text


class JSONParser(ResultParser):
    """Returns the decoded JSON body as-is."""

    async def parse(self, response: ResponseLike) -> Any:
        self.check_status(response)
        if response.status == 204 or not response.text.strip():
            return {}
        return self.load_json(response)


class ODataParser(ResultParser):
    """
    Returns the payload of an OData response.

    Unwraps the verbose ``{"d": ...}`` envelope (and its ``results`` list)
    and the ``value`` array of minimal-metadata collection responses.
    """

    async def parse(self, response: ResponseLike) -> Any:
        self.check_status(response)
        if response.status == 204 or not response.text.strip():
            return {}
        return self.unwrap(self.load_json(response))

    @staticmethod
    def unwrap(data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        if "d" in data:
            inner = data["d"]
            if isinstance(inner, dict) and isinstance(inner.get("results"), list):
                return inner["results"]
            return inner

        keys = {k for k in data if not k.startswith(("odata.", "@odata."))}
        if keys == {"value"} and isinstance(data["value"], list):
            return data["value"]

        return data
