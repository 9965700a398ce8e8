from sdramctl.core.address import AddressMapper, MappedAddress
from sdramctl.core.controller import ControllerSettings, Interface, SDRAMController
from sdramctl.core.datapath import DataPathArbiter
from sdramctl.core.engine import CommandEngine, EngineState
from sdramctl.core.initializer import InitSequencer
from sdramctl.core.refresher import RefreshTimer

__ALL__ = ["AddressMapper", "MappedAddress", "ControllerSettings", "Interface",
           "SDRAMController", "DataPathArbiter", "CommandEngine", "EngineState",
           "InitSequencer", "RefreshTimer"]
