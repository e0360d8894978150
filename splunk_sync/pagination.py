"""
Pagination state handling for nested resource listings.

A listing that walks several backend collections (for example roles, then the
users of each role) keeps one frame per level on a stack. The whole stack is
serialized into a single opaque token that external callers hand back to
resume the listing.
"""

import json
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class CursorError(Exception):
    """Raised when a continuation token cannot be decoded."""
    pass


class PageState:
    """One frame of pagination state: which collection, and where in it."""

    __slots__ = ('resource_type_id', 'resource_id', 'token')

    def __init__(self, resource_type_id: str, resource_id: str = '', token: str = ''):
        self.resource_type_id = resource_type_id
        self.resource_id = resource_id
        self.token = token

    def to_dict(self) -> Dict[str, str]:
        return {
            'token': self.token,
            'resource_type_id': self.resource_type_id,
            'resource_id': self.resource_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PageState':
        if not isinstance(data, dict):
            raise CursorError(f"Invalid page state: {data!r}")

        values = {}
        for field in ('resource_type_id', 'resource_id', 'token'):
            value = data.get(field, '')
            if not isinstance(value, str):
                raise CursorError(f"Invalid page state field '{field}': {value!r}")
            values[field] = value

        return cls(values['resource_type_id'], values['resource_id'], values['token'])

    def copy(self) -> 'PageState':
        return PageState(self.resource_type_id, self.resource_id, self.token)

    def __eq__(self, other):
        if not isinstance(other, PageState):
            return NotImplemented
        return (self.resource_type_id, self.resource_id, self.token) == \
            (other.resource_type_id, other.resource_id, other.token)

    def __repr__(self):
        return (f"PageState(resource_type_id={self.resource_type_id!r}, "
                f"resource_id={self.resource_id!r}, token={self.token!r})")


class Bag:
    """
    Stack of page states.

    The top of the stack lives in ``current_state``; the frames below it are
    kept in ``states`` in push order.
    """

    def __init__(self):
        self.states: List[PageState] = []
        self.current_state: Optional[PageState] = None

    def push(self, state: PageState) -> None:
        """Make ``state`` the current frame, keeping the previous one underneath."""
        if self.current_state is not None:
            self.states.append(self.current_state)
        self.current_state = state

    def pop(self) -> Optional[PageState]:
        """Remove and return the current frame."""
        if self.current_state is None:
            return None

        popped = self.current_state
        if self.states:
            self.current_state = self.states.pop()
        else:
            self.current_state = None
        return popped

    def current(self) -> Optional[PageState]:
        return self.current_state

    def page_token(self) -> str:
        """Return the backend page token of the current frame ('' for the first page)."""
        if self.current_state is None:
            return ''
        return self.current_state.token

    def next_token(self, page_token: str) -> str:
        """
        Advance the current frame and return the encoded bag.

        Args:
            page_token: Backend token of the next page, or '' when the current
                collection is exhausted (the frame is then popped)

        Returns:
            Encoded continuation token ('' once every frame is exhausted)

        Raises:
            CursorError: If there is no current frame to advance
        """
        if self.current_state is None:
            raise CursorError("No active page state to advance")

        if page_token:
            self.current_state.token = page_token
        else:
            self.pop()

        return self.marshal()

    def frames(self) -> List[PageState]:
        """Return all frames, bottom of the stack first."""
        frames = list(self.states)
        if self.current_state is not None:
            frames.append(self.current_state)
        return frames

    def marshal(self) -> str:
        if self.current_state is None:
            return ''

        return json.dumps({
            'states': [state.to_dict() for state in self.states],
            'current_state': self.current_state.to_dict(),
        }, separators=(',', ':'))

    def unmarshal(self, token: str) -> None:
        self.states = []
        self.current_state = None

        if not token:
            return

        try:
            data = json.loads(token)
        except (TypeError, ValueError) as e:
            raise CursorError(f"Malformed continuation token: {e}")

        if not isinstance(data, dict):
            raise CursorError("Malformed continuation token: expected an object")

        states = data.get('states') or []
        if not isinstance(states, list):
            raise CursorError("Malformed continuation token: 'states' must be a list")

        current = data.get('current_state')
        if current is None:
            # Exhausted stacks encode to the empty token, never to an object
            raise CursorError("Malformed continuation token: no current state")

        self.states = [PageState.from_dict(state) for state in states]
        self.current_state = PageState.from_dict(current)

    def __eq__(self, other):
        if not isinstance(other, Bag):
            return NotImplemented
        return self.frames() == other.frames()

    def __repr__(self):
        return f"Bag(frames={self.frames()!r})"


def decode(token: str, root_frame: PageState) -> Bag:
    """
    Decode a continuation token into a frame stack.

    An empty token starts a new listing: the result holds a copy of
    ``root_frame`` as its only frame.

    Raises:
        CursorError: If the token is malformed
    """
    bag = Bag()
    bag.unmarshal(token)

    if bag.current() is None:
        bag.push(root_frame.copy())

    return bag


def encode(bag: Bag) -> str:
    """Encode a frame stack; an exhausted stack encodes to ''."""
    return bag.marshal()
