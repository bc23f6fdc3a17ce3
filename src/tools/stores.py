"""Host-owned stores used by the tools.

Notebook storage and the user profile belong to the host application; the
agent consumes them through these interfaces. In-memory implementations
back the tests and local runs.
"""

import uuid
from abc import ABC, abstractmethod
from typing import Optional

from shared.logging import get_logger
from shared.models import Notebook, TimeframeType, UserGoal

logger = get_logger(__name__)


class NotebookStore(ABC):
    """Notebook management."""

    @abstractmethod
    async def list_notebooks(self) -> list[Notebook]:
        pass

    @abstractmethod
    async def get_notebook(self, notebook_id: str) -> Optional[Notebook]:
        pass

    @abstractmethod
    async def create_notebook(self, title: str, description: Optional[str] = None) -> Notebook:
        pass

    @abstractmethod
    async def delete_notebook(self, notebook_id: str) -> bool:
        """Delete a notebook; returns False if it did not exist."""
        pass

    async def find_by_title(self, title: str) -> Optional[Notebook]:
        """Case-insensitive exact title lookup."""
        wanted = title.strip().lower()
        for notebook in await self.list_notebooks():
            if notebook.title.strip().lower() == wanted:
                return notebook
        return None


class ProfileStore(ABC):
    """User profile and goals."""

    @abstractmethod
    async def get_profile_context(self, user_id: str) -> str:
        """Free-text profile summary for the system prompt."""
        pass

    @abstractmethod
    async def add_goals(self, user_id: str, goals: list[UserGoal]) -> list[UserGoal]:
        pass

    @abstractmethod
    async def remove_goals(self, user_id: str, goal_ids: list[str]) -> None:
        pass


class InMemoryNotebookStore(NotebookStore):
    """Notebook store kept in process memory."""

    def __init__(self, notebooks: Optional[list[Notebook]] = None) -> None:
        self._notebooks: dict[str, Notebook] = {nb.id: nb for nb in notebooks or []}

    async def list_notebooks(self) -> list[Notebook]:
        return list(self._notebooks.values())

    async def get_notebook(self, notebook_id: str) -> Optional[Notebook]:
        return self._notebooks.get(notebook_id)

    async def create_notebook(self, title: str, description: Optional[str] = None) -> Notebook:
        notebook = Notebook(id=str(uuid.uuid4()), title=title, description=description)
        self._notebooks[notebook.id] = notebook
        logger.info("Notebook created", notebook_id=notebook.id, title=title)
        return notebook

    async def delete_notebook(self, notebook_id: str) -> bool:
        if self._notebooks.pop(notebook_id, None) is None:
            return False
        logger.info("Notebook deleted", notebook_id=notebook_id)
        return True


class InMemoryProfileStore(ProfileStore):
    """Profile store kept in process memory."""

    def __init__(self, about: Optional[str] = None) -> None:
        self.about = about
        self._goals: dict[str, list[UserGoal]] = {}

    def get_goals(self, user_id: str) -> list[UserGoal]:
        return list(self._goals.get(user_id, []))

    async def get_profile_context(self, user_id: str) -> str:
        lines = []
        if self.about:
            lines.append(self.about)

        goals = self._goals.get(user_id, [])
        if goals:
            lines.append("Current goals:")
            for timeframe in TimeframeType:
                for goal in goals:
                    if goal.timeframe_type == timeframe:
                        lines.append(f"- [{timeframe.value}] {goal.text} (ID: {goal.id})")

        return "\n".join(lines)

    async def add_goals(self, user_id: str, goals: list[UserGoal]) -> list[UserGoal]:
        self._goals.setdefault(user_id, []).extend(goals)
        return goals

    async def remove_goals(self, user_id: str, goal_ids: list[str]) -> None:
        wanted = set(goal_ids)
        self._goals[user_id] = [g for g in self._goals.get(user_id, []) if g.id not in wanted]
