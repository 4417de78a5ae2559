"""Request/response collaborator standing in for UI dialogs."""

from typing import Iterable, List, Optional, Protocol


class Prompter(Protocol):
    def request_confirmation(self, question: str) -> bool: ...

    def request_name(self, prompt: str) -> Optional[str]: ...


class StaticPrompter:
    """Answers every prompt from fixed values and records what was asked.

    Used for HTTP requests (the answer arrives with the request) and tests.
    """

    def __init__(self, confirm: bool = False, names: Iterable[Optional[str]] = ()):
        self.confirm = confirm
        self._names: List[Optional[str]] = list(names)
        self.asked: List[str] = []

    def request_confirmation(self, question: str) -> bool:
        self.asked.append(question)
        return self.confirm

    def request_name(self, prompt: str) -> Optional[str]:
        self.asked.append(prompt)
        return self._names.pop(0) if self._names else None
