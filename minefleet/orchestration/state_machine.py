from enum import Enum, auto
import logging


class LifecycleState(Enum):
    INITIALIZING = auto()
    STARTING = auto()
    OPERATIONAL = auto()
    STOPPING = auto()
    SHUTDOWN = auto()


class LifecycleStateMachine:
    """Manages the start/stop lifecycle of a gateway or hub process"""

    def __init__(self, name: str = "process"):
        self.name = name
        self.current_state = LifecycleState.INITIALIZING
        self.logger = logging.getLogger(self.__class__.__name__)
        self.valid_transitions = {
            LifecycleState.INITIALIZING: {LifecycleState.STARTING, LifecycleState.SHUTDOWN},
            LifecycleState.STARTING: {LifecycleState.OPERATIONAL, LifecycleState.STOPPING},
            LifecycleState.OPERATIONAL: {LifecycleState.STOPPING},
            LifecycleState.STOPPING: {LifecycleState.SHUTDOWN},
            LifecycleState.SHUTDOWN: set()
        }

    def can_transition_to(self, new_state: LifecycleState) -> bool:
        return new_state in self.valid_transitions.get(self.current_state, set())

    def transition_to(self, new_state: LifecycleState) -> bool:
        if self.can_transition_to(new_state):
            self.logger.info(f"{self.name} state transition: {self.current_state.name} -> {new_state.name}")
            self.current_state = new_state
            return True
        else:
            self.logger.error(f"Invalid {self.name} state transition: {self.current_state.name} -> {new_state.name}")
            return False

    @property
    def is_running(self) -> bool:
        return self.current_state in (LifecycleState.STARTING, LifecycleState.OPERATIONAL)
