from netconf_events.ncclient import NetconfClient, Event, State
from netconf_events.connect import SshConfig

__all__ = ["NetconfClient", "Event", "State", "SshConfig"]
