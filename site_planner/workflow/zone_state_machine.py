"""State machine for the zone drawing workflow.

Uses python-statemachine for the drawing workflow with:
- Explicit state definitions
- Guarded transitions (conditions) for the checks that decide the target
- Entry hooks for side effects (auto validation, commit, session teardown)

Architecture Overview
---------------------
ZoneDrawContext is the model: python-statemachine keeps the current state
value in context.state, and context.session holds everything the workflow
knows about the zone being drawn. The session is created on start_draw and
discarded when the workflow returns to idle.

States:
    idle: No drawing session
    drawing: User is placing vertices (live metrics are updated)
    preview: Path completed, waiting for validate/save/cancel
    validating: Validation requested, waiting for its result
    dialog: Zone is valid, waiting for name and kind
    committing: Zone Shape is being built and handed to the project
    error: Workflow failed, message in session.error_message

Transitions:
    idle -> drawing: start_draw (requires a project boundary, else error)
    drawing -> preview: complete(path)
    drawing -> idle: cancel
    preview -> validating: validate (needs >= 3 points, else error)
    preview -> committing: save(name, kind) (needs an earlier valid result, else error)
    preview -> idle: cancel
    validating -> dialog / error: validation_passed / validation_failed
    validating -> preview: cancel (pending result is discarded)
    dialog -> committing: save(name, kind)
    dialog -> preview: cancel
    committing -> idle / error: commit_succeeded / commit_failed
    error -> idle: reset
    any active state -> error: error(message)

validation_passed, validation_failed, commit_succeeded and commit_failed are
internal: the machine sends them itself once a result is known.

Events that have no transition from the current state, or that carry the
wrong arguments, are ignored: send() logs a warning and returns False.
Double clicks and stale callbacks are expected from the UI layer.

Validation tickets
------------------
Entering validating issues a new ticket. A result is only accepted through
resolve_validation() with the current ticket while still validating; results
for cancelled or replaced requests are discarded. With auto_validate=True
(default) the machine validates synchronously on entering validating.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional, Sequence

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from site_planner.constants import GeometryConfig
from site_planner.core.polygon_engine import PolygonGeometryEngine
from site_planner.errors import GeometryError
from site_planner.model.geo_point import GeoPoint
from site_planner.model.shape import Shape, ShapeKind, ZoneMeta
from site_planner.model.shape_collection import ShapeCollection
from site_planner.workflow.live_metrics import LiveMetrics, LiveMetricsTracker
from site_planner.zoning.validation import ZoneValidationEngine, ZoneValidationResult

if TYPE_CHECKING:
    from site_planner.workflow.site_project import SiteProject
    from site_planner.workflow.terrain_trigger import TerrainAnalysisCoordinator

logger = logging.getLogger(__name__)


class ZoneDrawState(str, Enum):
    IDLE = "idle"
    DRAWING = "drawing"
    PREVIEW = "preview"
    VALIDATING = "validating"
    DIALOG = "dialog"
    COMMITTING = "committing"
    ERROR = "error"


class ZoneDrawEvent(str, Enum):
    START_DRAW = "start_draw"
    CANCEL = "cancel"
    COMPLETE = "complete"
    VALIDATE = "validate"
    SAVE = "save"
    ERROR = "error"
    RESET = "reset"


# Keyword arguments each public event must carry, no more and no less
EVENT_PAYLOADS: dict[ZoneDrawEvent, frozenset[str]] = {
    ZoneDrawEvent.START_DRAW: frozenset(),
    ZoneDrawEvent.CANCEL: frozenset(),
    ZoneDrawEvent.COMPLETE: frozenset({"path"}),
    ZoneDrawEvent.VALIDATE: frozenset(),
    ZoneDrawEvent.SAVE: frozenset({"name", "kind"}),
    ZoneDrawEvent.ERROR: frozenset({"message"}),
    ZoneDrawEvent.RESET: frozenset(),
}

assert set(EVENT_PAYLOADS) == set(ZoneDrawEvent), "Every event needs a payload entry"


@dataclass
class ZoneDrawSession:
    """State of the zone currently being drawn."""

    current_path: list[GeoPoint] = field(default_factory=list)
    validation_result: Optional[ZoneValidationResult] = None
    error_message: Optional[str] = None
    validation_ticket: int = 0
    zone_name: Optional[str] = None
    zone_kind: Optional[str] = None

    @property
    def has_valid_result(self) -> bool:
        return self.validation_result is not None and self.validation_result.is_valid


@dataclass
class ZoneDrawContext:
    """Shared context/model for the state machine.

    Note: The 'state' field is managed by python-statemachine when this
    object is passed as the model. It stores the current state value.
    """

    # State managed by python-statemachine (model pattern)
    state: Optional[str] = None

    session: Optional[ZoneDrawSession] = None
    last_committed: Optional[Shape] = None


class TransitionLogger:
    """Listener that logs every state change."""

    def after_transition(self, event: str, source: State, target: State) -> None:
        logger.info(f"[STATE] {source.value} --({event})--> {target.value}")


class ZoneDrawingStateMachine(StateMachine):
    """Drives drawing -> validation -> commit of a single zone.

    Example:
        sm = ZoneDrawingStateMachine.create(project=project)
        sm.send(ZoneDrawEvent.START_DRAW)
        sm.send(ZoneDrawEvent.COMPLETE, path=points)
        sm.send(ZoneDrawEvent.VALIDATE)
        sm.send(ZoneDrawEvent.SAVE, name="North Lots", kind="residential")
    """

    # ==========================================================================
    # State Definitions
    # ==========================================================================

    idle = State("Idle", initial=True)
    drawing = State("Drawing")
    preview = State("Preview")
    validating = State("Validating")
    dialog = State("Dialog")
    committing = State("Committing")
    # "error" is also an event name, so the state attribute differs from its value
    failed = State("Error", value=ZoneDrawState.ERROR.value)

    # ==========================================================================
    # Transitions
    # ==========================================================================

    start_draw = idle.to(drawing, cond="has_boundary") | idle.to(
        failed, unless="has_boundary", on="report_missing_boundary"
    )
    complete = drawing.to(preview)
    validate = preview.to(validating, cond="has_enough_points", on="issue_ticket") | preview.to(
        failed, unless="has_enough_points", on="report_too_few_points"
    )
    save = (
        preview.to(committing, cond="has_valid_result")
        | preview.to(failed, unless="has_valid_result", on="report_nothing_to_save")
        | dialog.to(committing)
    )
    cancel = (
        drawing.to(idle)
        | preview.to(idle)
        | validating.to(preview, on="invalidate_ticket")
        | dialog.to(preview)
    )
    error = (
        drawing.to(failed)
        | preview.to(failed)
        | validating.to(failed)
        | dialog.to(failed)
        | committing.to(failed)
    )
    reset = failed.to(idle)

    # Internal: sent by the machine once a result is known
    validation_passed = validating.to(dialog)
    validation_failed = validating.to(failed)
    commit_succeeded = committing.to(idle)
    commit_failed = committing.to(failed)

    def __init__(
        self,
        snapshot: Callable[[], ShapeCollection],
        on_commit: Callable[[Shape], Any],
        id_factory: Callable[[], str],
        validator: Optional[ZoneValidationEngine] = None,
        auto_validate: bool = True,
        on_session_start: Optional[Callable[[], None]] = None,
        context: Optional[ZoneDrawContext] = None,
    ) -> None:
        """Initialize in idle.

        Args:
            snapshot: Returns the current shape collection (boundary and zones)
            on_commit: Receives the committed zone Shape; may raise GeometryError
            id_factory: Returns a fresh shape ID for the committed zone
            validator: Validation engine (default rules and taxonomy if None)
            auto_validate: Validate synchronously on entering validating
            on_session_start: Called when a new drawing session starts
            context: Shared context/model (creates new if None)
        """
        self.snapshot = snapshot
        self.commit_handler = on_commit
        self.id_factory = id_factory
        self.validator = validator or ZoneValidationEngine()
        self.auto_validate = auto_validate
        self.session_start_handler = on_session_start
        self.live_metrics = LiveMetricsTracker(engine=self.engine)
        self._ticket_counter = 0
        super().__init__(model=context or ZoneDrawContext())

    @property
    def context(self) -> ZoneDrawContext:
        return self.model

    @property
    def engine(self) -> PolygonGeometryEngine:
        return self.validator.engine

    @property
    def state(self) -> ZoneDrawState:
        return ZoneDrawState(self.current_state.value)

    @property
    def session(self) -> Optional[ZoneDrawSession]:
        return self.context.session

    @session.setter
    def session(self, value: Optional[ZoneDrawSession]) -> None:
        self.context.session = value

    @property
    def last_committed(self) -> Optional[Shape]:
        return self.context.last_committed

    # ==========================================================================
    # Event dispatch
    # ==========================================================================

    def send(self, event: ZoneDrawEvent | str, *args: Any, **kwargs: Any) -> bool:
        """Apply an event.

        Args:
            event: Event (or its value, e.g. "complete")
            **kwargs: Event arguments (complete: path, save: name and kind,
                error: message)

        Returns:
            True if the event was handled, False if it is not allowed in the
            current state or its arguments are wrong (no change).
        """
        event = event.value if isinstance(event, ZoneDrawEvent) else event
        problem = _payload_problem(event=event, args=args, kwargs=kwargs)
        if problem is not None:
            logger.warning(f"Ignoring '{event}' in {self.state.value}: {problem}")
            return False
        try:
            super().send(event, *args, **kwargs)
        except TransitionNotAllowed:
            logger.warning(f"Transition '{event}' not allowed from {self.state.value}")
            return False
        return True

    # ==========================================================================
    # Guards (Conditions)
    # ==========================================================================

    def has_boundary(self) -> bool:
        return self.snapshot().boundary is not None

    def has_enough_points(self) -> bool:
        return len(self.session.current_path) >= GeometryConfig.MIN_RING_VERTICES

    def has_valid_result(self) -> bool:
        return self.session.has_valid_result

    # ==========================================================================
    # Transition Actions
    # ==========================================================================

    def before_start_draw(self) -> None:
        self.session = ZoneDrawSession()
        if self.session_start_handler is not None:
            self.session_start_handler()

    def report_missing_boundary(self) -> None:
        self.session.error_message = "No project boundary defined"

    def before_complete(self, path: Sequence[GeoPoint]) -> None:
        self.session.current_path = list(path)
        self.session.validation_result = None
        self.live_metrics.update(path=self.session.current_path, force=True)

    def issue_ticket(self) -> None:
        self._ticket_counter += 1
        self.session.validation_ticket = self._ticket_counter
        self.session.validation_result = None

    def report_too_few_points(self) -> None:
        self.session.error_message = f"Zone must have at least {GeometryConfig.MIN_RING_VERTICES} points"

    def invalidate_ticket(self) -> None:
        self._ticket_counter += 1
        self.session.validation_ticket = self._ticket_counter

    def report_nothing_to_save(self) -> None:
        self.session.error_message = "No valid zone to save"

    def before_save(self, name: str, kind: str) -> None:
        self.session.zone_name = name.strip()
        self.session.zone_kind = kind

    def before_error(self, message: str) -> None:
        self.session.error_message = message

    # ==========================================================================
    # Entry Hooks
    # ==========================================================================

    def on_enter_idle(self) -> None:
        self.session = None
        self.live_metrics.reset()

    def on_enter_validating(self) -> None:
        if self.auto_validate:
            self.process_pending_validation()

    def on_enter_committing(self) -> None:
        self._commit()

    # ==========================================================================
    # Validation
    # ==========================================================================

    def validation_request(self) -> Optional[tuple[int, list[GeoPoint]]]:
        """Ticket and path of the pending validation, or None if not validating."""
        if not self.validating.is_active:
            return None
        return self.session.validation_ticket, list(self.session.current_path)

    def run_validation(self, path: Sequence[GeoPoint], kind: Optional[str] = None) -> ZoneValidationResult:
        """Validate a path against the current boundary and zones."""
        collection = self.snapshot()
        boundary = collection.boundary
        return self.validator.validate(
            zone_ring=path,
            boundary_ring=boundary.ring if boundary is not None else None,
            existing_zones=collection.zones,
            kind=kind,
        )

    def process_pending_validation(self) -> bool:
        """Validate the pending request synchronously and resolve it."""
        request = self.validation_request()
        if request is None:
            return False
        ticket, path = request
        return self.resolve_validation(ticket=ticket, result=self.run_validation(path=path))

    def resolve_validation(self, ticket: int, result: ZoneValidationResult) -> bool:
        """Deliver a validation result.

        Returns:
            True if the result was applied, False if it was stale (ticket
            superseded, session cancelled or no longer validating).
        """
        if not self.validating.is_active or self.session.validation_ticket != ticket:
            logger.warning(f"Discarding stale validation result (ticket {ticket}) in state {self.state.value}")
            return False

        self.session.validation_result = result
        if result.is_valid:
            self.send("validation_passed")
        else:
            self.session.error_message = f"Zone is not valid: {'; '.join(result.reasons)}"
            self.send("validation_failed")
        return True

    # ==========================================================================
    # Commit
    # ==========================================================================

    def _commit(self) -> None:
        """Build the zone Shape, re-check it for the chosen kind and hand it over."""
        session = self.session
        try:
            ring = self.engine.normalize_ring(points=session.current_path, operation="commit")
            self.engine.validate_ring(ring=ring, operation="commit")

            result = self.run_validation(path=ring, kind=session.zone_kind)
            if not result.is_valid:
                session.validation_result = result
                session.error_message = f"Zone is not valid as {session.zone_kind}: {'; '.join(result.reasons)}"
                self.send("commit_failed")
                return

            zone_id = self.id_factory()
            zone = Shape(
                id=zone_id,
                ring=ring,
                meta=ZoneMeta(name=session.zone_name or f"Zone {zone_id}", kind=session.zone_kind),
                area_m2=self.engine.area(ring=ring),
            )
            self.commit_handler(zone)
        except (GeometryError, KeyError, ValueError) as e:
            session.error_message = str(e)
            self.send("commit_failed")
            return

        self.context.last_committed = zone
        logger.info(f"Committed zone {zone.id} '{zone.meta.name}' ({zone.area_m2:.1f}m²)")
        self.send("commit_succeeded")

    # ==========================================================================
    # Drawing input
    # ==========================================================================

    def update_path(self, path: Sequence[GeoPoint]) -> Optional[LiveMetrics]:
        """Replace the in-progress path while drawing.

        Returns:
            Fresh live metrics, or None if not drawing or throttled.
        """
        if not self.drawing.is_active:
            return None
        self.session.current_path = list(path)
        return self.live_metrics.update(path=self.session.current_path)

    def add_vertex(self, point: GeoPoint) -> Optional[LiveMetrics]:
        if not self.drawing.is_active:
            return None
        return self.update_path(path=[*self.session.current_path, point])

    # ==========================================================================
    # Utility Methods
    # ==========================================================================

    @property
    def is_active(self) -> bool:
        return self.session is not None

    @property
    def error_message(self) -> Optional[str]:
        return self.session.error_message if self.session is not None else None

    def get_available_events(self) -> list[ZoneDrawEvent]:
        """Public events with a transition from the current state (for UI display only)."""
        names = dict.fromkeys(t.event for t in self.current_state.transitions)
        return [event for event in ZoneDrawEvent if event.value in names]

    def try_transition(self, event: ZoneDrawEvent | str, **kwargs: Any) -> bool:
        """Like send(), but a GeometryError raised while handling returns False."""
        try:
            return self.send(event, **kwargs)
        except GeometryError as e:
            logger.warning(f"Transition '{event}' failed in {self.state.value}: {e}")
            return False

    def __repr__(self) -> str:
        return f"ZoneDrawingStateMachine(state={self.state.value}, session={self.session!r})"

    @staticmethod
    def create(
        project: "SiteProject",
        validator: Optional[ZoneValidationEngine] = None,
        coordinator: Optional["TerrainAnalysisCoordinator"] = None,
        add_logger: bool = True,
        auto_validate: bool = True,
    ) -> "ZoneDrawingStateMachine":
        """Factory wiring the machine to a SiteProject.

        Args:
            project: Supplies the snapshot, zone IDs and receives committed zones
            validator: Validation engine (defaults to one sharing the project's engine)
            coordinator: Terrain analysis to invalidate when a drawing session starts
            add_logger: If True, adds TransitionLogger
            auto_validate: Validate synchronously on entering validating

        Returns:
            ZoneDrawingStateMachine in idle.
        """
        sm = ZoneDrawingStateMachine(
            snapshot=lambda: project.collection,
            on_commit=lambda shape: project.add_shape(shape=shape),
            id_factory=lambda: project.next_id(kind=ShapeKind.ZONE),
            validator=validator or ZoneValidationEngine(engine=project.engine),
            auto_validate=auto_validate,
            on_session_start=coordinator.invalidate if coordinator is not None else None,
        )
        if add_logger:
            sm.add_listener(TransitionLogger())
            logger.info("Created ZoneDrawingStateMachine with TransitionLogger")
        else:
            logger.info("Created ZoneDrawingStateMachine without listener")
        return sm


def _payload_problem(event: str, args: tuple, kwargs: dict[str, Any]) -> Optional[str]:
    """Why the arguments do not fit a public event, or None if they do."""
    try:
        expected = EVENT_PAYLOADS[ZoneDrawEvent(event)]
    except ValueError:
        # Internal events carry no user payload
        return None
    if args:
        return "positional arguments are not accepted"
    if set(kwargs) != expected:
        wanted = ", ".join(sorted(expected)) or "no arguments"
        return f"expects {wanted}, got {', '.join(sorted(kwargs)) or 'none'}"
    empty = sorted(key for key, value in kwargs.items() if value is None)
    if empty:
        return f"{', '.join(empty)} must not be None"
    for key in ("name", "kind", "message"):
        if key in kwargs and not isinstance(kwargs[key], str):
            return f"{key} must be a string"
    return None
