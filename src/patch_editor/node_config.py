"""Per-type configuration payloads.

A node's ``data`` is a tagged union keyed by the node type: every type maps to
exactly one pydantic model in ``CONFIG_MODELS``, and payloads are validated
when the node is built or its data is replaced, never at read sites.
Types without a dedicated model fall back to :class:`NodeConfig`, which keeps
whatever keys it is given.
"""
import uuid
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigError

INSTRUMENT_TYPES = ("piano", "cello", "violin", "saxophone", "strings", "keys", "winds")


class NodeConfig(BaseModel):
    """Generic payload for node types without a dedicated shape."""
    model_config = ConfigDict(extra="allow")


class _StrictConfig(NodeConfig):
    model_config = ConfigDict(extra="forbid")


class KeyboardConfig(_StrictConfig):
    assigned_key: int = Field(2, ge=2, le=9)
    active_row: int = Field(0, ge=0, le=2)
    row_octaves: List[int] = Field(default_factory=lambda: [4, 4, 4])

    @field_validator("row_octaves")
    @classmethod
    def _check_octaves(cls, value: List[int]) -> List[int]:
        if len(value) != 3:
            raise ValueError("row_octaves needs one octave per keyboard row (3)")
        if any(octave < 0 or octave > 8 for octave in value):
            raise ValueError("octaves must be between 0 and 8")
        return value


class MicrophoneConfig(_StrictConfig):
    is_muted: bool = False
    is_active: bool = False
    device_id: Optional[str] = None
    low_latency_mode: bool = False


class MidiConfig(_StrictConfig):
    device_id: Optional[str] = None
    preset_id: str = "generic"
    is_connected: bool = False
    active_channel: int = Field(0, ge=0, le=16)  # 0 = omni


class InstrumentRow(BaseModel):
    """One bundle of keys feeding an instrument."""
    row_id: str = Field(default_factory=lambda: f"row-{uuid.uuid4().hex[:8]}")
    source_node_id: str
    source_port_id: str
    target_port_id: str
    label: str = ""
    spread: int = Field(1, ge=0, le=12)
    base_note: int = Field(0, ge=0, le=11)
    base_octave: int = Field(4, ge=0, le=8)
    base_offset: int = Field(0, ge=-48, le=48)
    port_count: int = Field(1, ge=1, le=128)
    key_gains: List[float] = Field(default_factory=list)


class InstrumentConfig(_StrictConfig):
    instrument_id: str = ""
    offsets: Dict[str, int] = Field(default_factory=dict)
    active_inputs: List[str] = Field(default_factory=list)
    rows: List[InstrumentRow] = Field(default_factory=list)


class EffectConfig(_StrictConfig):
    effect_type: Literal["distortion", "pitch", "reverb", "delay"] = "reverb"
    params: Dict[str, float] = Field(default_factory=dict)


class AmplifierConfig(_StrictConfig):
    gain: float = Field(1.0, ge=0.0)


class SpeakerConfig(_StrictConfig):
    volume: float = Field(1.0, ge=0.0, le=1.0)
    is_muted: bool = False
    device_id: str = "default"


class LooperConfig(_StrictConfig):
    duration: float = Field(10.0, gt=0.0)
    is_recording: bool = False
    current_time: float = Field(0.0, ge=0.0)


class RecorderConfig(_StrictConfig):
    is_recording: bool = False
    recorded_seconds: float = Field(0.0, ge=0.0)


class CanvasPortConfig(_StrictConfig):
    port_name: str = ""
    kind: Literal["audio", "control", "universal"] = "audio"


class PanelConfig(_StrictConfig):
    slot_kind: Literal["audio", "control", "universal"] = "control"


class BundleSlot(BaseModel):
    id: str
    name: str = ""
    direction: Literal["input", "output"] = "input"


class BundleConfig(_StrictConfig):
    """Channel-to-bundle assignment of a container node.

    ``internal_to_bundle`` maps an internal port id to its bundle id and
    ``bundle_to_internal`` is the reverse index. Both maps must agree.
    """
    input_bundles: List[BundleSlot] = Field(default_factory=list)
    output_bundles: List[BundleSlot] = Field(default_factory=list)
    internal_to_bundle: Dict[str, str] = Field(default_factory=dict)
    bundle_to_internal: Dict[str, List[str]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_maps(self) -> "BundleConfig":
        for internal_id, bundle_id in self.internal_to_bundle.items():
            if internal_id not in self.bundle_to_internal.get(bundle_id, []):
                raise ValueError(f"'{internal_id}' is missing from the reverse map of '{bundle_id}'")
        for bundle_id, members in self.bundle_to_internal.items():
            if len(set(members)) != len(members):
                raise ValueError(f"bundle '{bundle_id}' lists a member twice")
            for internal_id in members:
                if self.internal_to_bundle.get(internal_id) != bundle_id:
                    raise ValueError(f"'{internal_id}' is not mapped to bundle '{bundle_id}'")
        return self

    def bundle_ids(self) -> List[str]:
        return [b.id for b in self.input_bundles] + [b.id for b in self.output_bundles]


CONFIG_MODELS: Dict[str, Type[NodeConfig]] = {
    "keyboard": KeyboardConfig,
    "microphone": MicrophoneConfig,
    "midi": MidiConfig,
    "effect": EffectConfig,
    "amplifier": AmplifierConfig,
    "speaker": SpeakerConfig,
    "looper": LooperConfig,
    "recorder": RecorderConfig,
    "canvas-input": CanvasPortConfig,
    "canvas-output": CanvasPortConfig,
    "input-panel": PanelConfig,
    "output-panel": PanelConfig,
    "container": BundleConfig,
}
CONFIG_MODELS.update({name: InstrumentConfig for name in INSTRUMENT_TYPES})


def config_model_for(node_type: str) -> Type[NodeConfig]:
    return CONFIG_MODELS.get(node_type, NodeConfig)


def parse_config(node_type: str, raw: Any) -> NodeConfig:
    """Validate ``raw`` against the payload shape registered for ``node_type``."""
    model = config_model_for(node_type)
    if isinstance(raw, model):
        return raw
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    if raw is None:
        raw = {}
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration for '{node_type}': {e}") from e
