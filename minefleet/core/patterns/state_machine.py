from enum import Enum, auto
from typing import Dict, List


class UplinkState(Enum):
    DISCONNECTED  = auto()
    CONNECTING    = auto()
    CONNECTED     = auto()
    RECONNECTING  = auto()
    SHUTDOWN      = auto()


class StateMachine:
    def __init__(self, initial: UplinkState = UplinkState.DISCONNECTED):
        self._state = initial
        self._trans: Dict[UplinkState, List[UplinkState]] = {
            UplinkState.DISCONNECTED: [UplinkState.CONNECTING, UplinkState.SHUTDOWN],
            UplinkState.CONNECTING:   [UplinkState.CONNECTED, UplinkState.RECONNECTING,
                                       UplinkState.SHUTDOWN],
            UplinkState.CONNECTED:    [UplinkState.RECONNECTING, UplinkState.SHUTDOWN],
            UplinkState.RECONNECTING: [UplinkState.CONNECTING, UplinkState.SHUTDOWN],
            UplinkState.SHUTDOWN:     [],
        }

    @property
    def state(self) -> UplinkState: return self._state

    def can(self, nxt: UplinkState) -> bool: return nxt in self._trans[self._state]

    def transition(self, nxt: UplinkState) -> bool:
        if self.can(nxt):
            self._state = nxt
            return True
        return False
