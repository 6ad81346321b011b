from dataclasses import dataclass
from typing import Optional

import requests


@dataclass(frozen=True)
class Result:
    """Outcome of an outbound call: either an error or the server's response."""
    error: Optional[Exception] = None
    response: Optional[requests.Response] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Optional[requests.Response]:
        """Returns the response, raising the error if the call failed."""
        if self.error is not None:
            raise self.error
        return self.response

    @classmethod
    def failure(cls, error: Exception, response: Optional[requests.Response] = None) -> "Result":
        return cls(error=error, response=response)

    @classmethod
    def success(cls, response: Optional[requests.Response] = None) -> "Result":
        return cls(response=response)
