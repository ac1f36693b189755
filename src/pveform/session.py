"""Edit session for a single property.

An :class:`EditSession` captures its own copy of the configuration record
when it opens, so background reloads do not touch an open editor until
:meth:`EditSession.reload` is called.  Submission is a single attempt
through a caller supplied transport; there is no retry and no
cancellation.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Mapping
from typing import Any

from .errors import PveFormError, SubmissionError, SubmissionInProgressError
from .flatten import WorkingRecord
from .pending import revert_payload
from .properties import EditableProperty

logger = logging.getLogger(__name__)

Transport = Callable[[dict[str, Any]], Any]


class EditSession:
    """Open editor for *prop* over *record*.

    *submit* receives the request payload and returns the backend
    response.  Library errors it raises propagate unchanged, anything
    else is reported as :class:`SubmissionError`.
    """

    def __init__(
        self,
        prop: EditableProperty,
        record: Mapping[str, Any],
        *,
        submit: Transport,
    ) -> None:
        self.prop = prop
        self._transport = submit
        self._submitting = False
        self.record: dict[str, Any] = {}
        self.working = WorkingRecord()
        self.reload(record)

    @property
    def submitting(self) -> bool:
        return self._submitting

    def reload(self, record: Mapping[str, Any]) -> None:
        """Discard local edits and rebuild the working record from *record*."""

        self.record = copy.deepcopy(dict(record))
        self.working = self.prop.load(self.record)
        logger.debug("loaded %s", self.prop.name)

    def get(self, name: str, default: Any = None) -> Any:
        return self.working.get(name, default)

    def set_value(self, name: str, value: Any) -> None:
        """Apply an edit and run the property's synchronisation step."""

        self.working.set(name, value)
        self.prop.sync(self.working)

    def set_invalid(self, name: str, raw: Any) -> None:
        """Record input for *name* that did not pass field validation."""

        self.working.mark_invalid(name, raw)

    def payload(self) -> dict[str, Any]:
        """Return the request payload without sending it."""

        return self.prop.submit(self.working, self.record)

    def _send(self, payload: dict[str, Any]) -> Any:
        if self._submitting:
            raise SubmissionInProgressError(f"{self.prop.name}: submission in progress")
        self._submitting = True
        try:
            return self._transport(payload)
        except PveFormError:
            raise
        except Exception as exc:
            logger.warning("submitting %s failed: %s", self.prop.name, exc)
            raise SubmissionError(str(exc)) from exc
        finally:
            self._submitting = False

    def submit(self) -> Any:
        """Validate, build the payload and send it once.

        :class:`~pveform.errors.ReassembleError` and
        :class:`~pveform.errors.ValidationError` are raised before the
        transport is called.  On failure the working record is unchanged.
        """

        if self._submitting:
            raise SubmissionInProgressError(f"{self.prop.name}: submission in progress")
        return self._send(self.payload())

    def revert(self) -> Any:
        """Ask the backend to drop the pending changes of this property."""

        return self._send(revert_payload(self.prop.revert_keys))


__all__ = ["EditSession", "Transport"]
