"""Extension points - veto, comment alteration and transition listeners"""
from typing import Callable, List, Optional

from ..domain.models import ActorContext, TransitionInstance
from ..utils.logger import get_logger

logger = get_logger(__name__)


class TransitionExtension:
    """
    Base class for engine extensions. Override only what you need.

    - veto: return False to reject a state-changing transition
    - alter_comment: return a replacement comment, or None to keep it
    - pre_transition / post_transition: called around persisting an instance
    """

    name: str = "extension"

    def veto(self, transition: TransitionInstance, actor: ActorContext) -> bool:
        return True

    def alter_comment(self, transition: TransitionInstance) -> Optional[str]:
        return None

    def pre_transition(self, transition: TransitionInstance) -> None:
        pass

    def post_transition(self, transition: TransitionInstance) -> None:
        pass


class FunctionExtension(TransitionExtension):
    """Extension assembled from plain callables"""

    def __init__(
        self,
        name: str,
        veto: Optional[Callable[[TransitionInstance, ActorContext], bool]] = None,
        alter_comment: Optional[Callable[[TransitionInstance], Optional[str]]] = None,
        pre_transition: Optional[Callable[[TransitionInstance], None]] = None,
        post_transition: Optional[Callable[[TransitionInstance], None]] = None,
    ):
        self.name = name
        self._veto = veto
        self._alter_comment = alter_comment
        self._pre = pre_transition
        self._post = post_transition

    def veto(self, transition: TransitionInstance, actor: ActorContext) -> bool:
        return self._veto(transition, actor) if self._veto else True

    def alter_comment(self, transition: TransitionInstance) -> Optional[str]:
        return self._alter_comment(transition) if self._alter_comment else None

    def pre_transition(self, transition: TransitionInstance) -> None:
        if self._pre:
            self._pre(transition)

    def post_transition(self, transition: TransitionInstance) -> None:
        if self._post:
            self._post(transition)


class ExtensionRegistry:
    """Ordered list of extensions, composed when the engine is built"""

    def __init__(self, extensions: Optional[List[TransitionExtension]] = None):
        self._extensions: List[TransitionExtension] = list(extensions or [])

    def register(self, extension: TransitionExtension) -> None:
        self._extensions.append(extension)
        logger.info(f"Registered transition extension: {extension.name}")

    def unregister(self, name: str) -> None:
        self._extensions = [e for e in self._extensions if e.name != name]

    def __iter__(self):
        return iter(list(self._extensions))

    def __len__(self) -> int:
        return len(self._extensions)

    def veto(self, transition: TransitionInstance, actor: ActorContext) -> Optional[str]:
        """Name of the first extension that rejects the transition, if any"""
        for extension in self:
            if not extension.veto(transition, actor):
                return extension.name
        return None

    def alter_comment(self, transition: TransitionInstance) -> Optional[str]:
        """Pass the comment through every extension in order"""
        comment = transition.comment
        for extension in self:
            transition.comment = comment
            replacement = extension.alter_comment(transition)
            if replacement is not None:
                comment = replacement
        return comment

    def pre_transition(self, transition: TransitionInstance) -> None:
        for extension in self:
            extension.pre_transition(transition)

    def post_transition(self, transition: TransitionInstance) -> None:
        for extension in self:
            extension.post_transition(transition)
