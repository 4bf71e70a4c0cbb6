"""
Configuration management for the gaze and blink interaction core.
"""
import yaml
from pathlib import Path
from typing import Optional, Dict, Any, List, Tuple
from dataclasses import dataclass


@dataclass
class CameraConfig:
    """Camera configuration settings."""
    index: int
    width: int
    height: int
    fps: int


@dataclass
class MediaPipeConfig:
    """MediaPipe FaceMesh configuration settings."""
    max_num_faces: int
    refine_landmarks: bool
    min_detection_confidence: float
    min_tracking_confidence: float
    init_attempts: int
    init_backoff_ms: int


@dataclass
class ScreenConfig:
    """Size of the interaction surface in pixels."""
    width: int
    height: int


@dataclass
class GravityConfig:
    """Zone gravity (horizontal snapping) settings."""
    enabled: bool
    radius_px: float
    strength: float


@dataclass
class GazeConfig:
    """Gaze ratio and cursor stabilization settings."""
    ratio_scale: float
    ratio_min: float
    ratio_max: float
    sensitivity_x: float
    sensitivity_y: float
    mirror_x: bool
    edge_margin_px: float
    max_position_change_px: float
    smoothing_factor: float
    gravity: GravityConfig


@dataclass
class ZoneConfig:
    """Relative widths of the left, center and right bands."""
    ratios: Tuple[float, float, float]


@dataclass
class BlinkConfig:
    """Blink classification and adaptive EAR baseline settings."""
    initial_threshold: float
    adaptive: bool
    open_margin: float
    history_size: int
    min_samples: int
    update_ratio: float
    threshold_smoothing: float
    threshold_min: float
    threshold_max: float
    long_blink_ms: float
    max_blink_ms: float
    double_blink_window_ms: float
    double_blink_count: int
    ear_smoothing_window: int


@dataclass
class DispatcherConfig:
    """Zone transition and blink binding settings."""
    cooldown_ms: float
    bindings: Dict[str, str]


@dataclass
class SelectionConfig:
    """Word picker settings."""
    flow: str
    page_size: int
    navigation_debounce_ms: float
    auto_reset_ms: float
    politeness: str


@dataclass
class EnhancementConfig:
    """Sentence enhancement service settings."""
    enabled: bool
    url: str
    timeout_ms: float
    cache: bool


@dataclass
class SpeechConfig:
    """Speech output settings."""
    provider: str
    language: str
    voice_id: str
    model_id: str


@dataclass
class PipelineConfig:
    """Frame loop settings."""
    process_every_n_frames: int
    max_consecutive_errors: int


@dataclass
class CalibrationConfig:
    """Calibration target points as fractions of the screen."""
    targets: List[Tuple[float, float]]


@dataclass
class DisplayConfig:
    """Display configuration settings."""
    show_landmarks: bool
    show_cursor: bool
    window_name: str


@dataclass
class Cfg:
    """Main configuration class."""
    camera: CameraConfig
    mediapipe: MediaPipeConfig
    screen: ScreenConfig
    gaze: GazeConfig
    zones: ZoneConfig
    blink: BlinkConfig
    dispatcher: DispatcherConfig
    selection: SelectionConfig
    enhancement: EnhancementConfig
    speech: SpeechConfig
    pipeline: PipelineConfig
    calibration: CalibrationConfig
    display: DisplayConfig


def load_config(path: Optional[str] = None) -> Cfg:
    """
    Load configuration from YAML file.

    Args:
        path: Path to config file. If None, uses config.default.yaml

    Returns:
        Configuration object with all settings
    """
    if path is None:
        # Default config ships inside the package
        path = Path(__file__).parent / "config.default.yaml"

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)

    return _dict_to_config(data)


def _dict_to_config(data: Dict[str, Any]) -> Cfg:
    """Convert dictionary to configuration object."""
    camera_data = data['camera']
    camera = CameraConfig(
        index=camera_data['index'],
        width=camera_data['width'],
        height=camera_data['height'],
        fps=camera_data['fps']
    )

    mp_data = data['mediapipe']
    mediapipe = MediaPipeConfig(
        max_num_faces=mp_data['max_num_faces'],
        refine_landmarks=mp_data['refine_landmarks'],
        min_detection_confidence=mp_data['min_detection_confidence'],
        min_tracking_confidence=mp_data['min_tracking_confidence'],
        init_attempts=mp_data['init_attempts'],
        init_backoff_ms=mp_data['init_backoff_ms']
    )

    screen = ScreenConfig(
        width=data['screen']['width'],
        height=data['screen']['height']
    )

    gaze_data = data['gaze']
    gravity = GravityConfig(
        enabled=gaze_data['gravity']['enabled'],
        radius_px=gaze_data['gravity']['radius_px'],
        strength=gaze_data['gravity']['strength']
    )
    gaze = GazeConfig(
        ratio_scale=gaze_data['ratio_scale'],
        ratio_min=gaze_data['ratio_min'],
        ratio_max=gaze_data['ratio_max'],
        sensitivity_x=gaze_data['sensitivity_x'],
        sensitivity_y=gaze_data['sensitivity_y'],
        mirror_x=gaze_data['mirror_x'],
        edge_margin_px=gaze_data['edge_margin_px'],
        max_position_change_px=gaze_data['max_position_change_px'],
        smoothing_factor=gaze_data['smoothing_factor'],
        gravity=gravity
    )

    ratios = data['zones']['ratios']
    if len(ratios) != 3:
        raise ValueError(f"zones.ratios needs exactly 3 values, got {len(ratios)}")
    zones = ZoneConfig(ratios=(float(ratios[0]), float(ratios[1]), float(ratios[2])))

    blink_data = data['blink']
    blink = BlinkConfig(
        initial_threshold=blink_data['initial_threshold'],
        adaptive=blink_data['adaptive'],
        open_margin=blink_data['open_margin'],
        history_size=blink_data['history_size'],
        min_samples=blink_data['min_samples'],
        update_ratio=blink_data['update_ratio'],
        threshold_smoothing=blink_data['threshold_smoothing'],
        threshold_min=blink_data['threshold_min'],
        threshold_max=blink_data['threshold_max'],
        long_blink_ms=blink_data['long_blink_ms'],
        max_blink_ms=blink_data['max_blink_ms'],
        double_blink_window_ms=blink_data['double_blink_window_ms'],
        double_blink_count=blink_data['double_blink_count'],
        ear_smoothing_window=blink_data['ear_smoothing_window']
    )

    dispatcher = DispatcherConfig(
        cooldown_ms=data['dispatcher']['cooldown_ms'],
        bindings=dict(data['dispatcher']['bindings'] or {})
    )

    selection_data = data['selection']
    selection = SelectionConfig(
        flow=selection_data['flow'],
        page_size=selection_data['page_size'],
        navigation_debounce_ms=selection_data['navigation_debounce_ms'],
        auto_reset_ms=selection_data['auto_reset_ms'],
        politeness=selection_data['politeness']
    )

    enhancement_data = data['enhancement']
    enhancement = EnhancementConfig(
        enabled=enhancement_data['enabled'],
        url=enhancement_data['url'],
        timeout_ms=enhancement_data['timeout_ms'],
        cache=enhancement_data['cache']
    )

    speech_data = data['speech']
    speech = SpeechConfig(
        provider=speech_data['provider'],
        language=speech_data['language'],
        voice_id=speech_data['voice_id'],
        model_id=speech_data['model_id']
    )

    pipeline = PipelineConfig(
        process_every_n_frames=data['pipeline']['process_every_n_frames'],
        max_consecutive_errors=data['pipeline']['max_consecutive_errors']
    )

    calibration = CalibrationConfig(
        targets=[(float(x), float(y)) for x, y in data['calibration']['targets']]
    )

    display_data = data['display']
    display = DisplayConfig(
        show_landmarks=display_data['show_landmarks'],
        show_cursor=display_data['show_cursor'],
        window_name=display_data['window_name']
    )

    return Cfg(
        camera=camera,
        mediapipe=mediapipe,
        screen=screen,
        gaze=gaze,
        zones=zones,
        blink=blink,
        dispatcher=dispatcher,
        selection=selection,
        enhancement=enhancement,
        speech=speech,
        pipeline=pipeline,
        calibration=calibration,
        display=display
    )
