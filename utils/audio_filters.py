"""
Equalizer settings for locally decoded playback
Builds the ffmpeg -af filter chain from bass, treble and speed
"""
from dataclasses import dataclass
from typing import Optional

BASS_RANGE = (-10, 10)
TREBLE_RANGE = (-10, 10)
SPEED_RANGE = (0.5, 2.0)

# name -> (bass, treble, speed)
PRESETS = {
    'rock': (3, 2, 1.0),
    'pop': (1, 3, 1.0),
    'jazz': (-1, 1, 1.0),
    'classical': (0, 0, 1.0),
    'electronic': (5, 4, 1.0),
    'bass_boost': (8, -2, 1.0),
    'nightcore': (-3, 2, 1.25),
    'slowdown': (2, -1, 0.8),
    'clear': (0, 0, 1.0),
}


@dataclass
class AudioFilterState:
    """Process-wide equalizer settings"""
    bass: int = 0
    treble: int = 0
    speed: float = 1.0
    preset: str = 'clear'

    def set_bass(self, value: int):
        if not BASS_RANGE[0] <= value <= BASS_RANGE[1]:
            raise ValueError(f'Bass must be between {BASS_RANGE[0]} and {BASS_RANGE[1]} dB')
        self.bass = value
        self.preset = 'custom'

    def set_treble(self, value: int):
        if not TREBLE_RANGE[0] <= value <= TREBLE_RANGE[1]:
            raise ValueError(f'Treble must be between {TREBLE_RANGE[0]} and {TREBLE_RANGE[1]} dB')
        self.treble = value
        self.preset = 'custom'

    def set_speed(self, value: float):
        if not SPEED_RANGE[0] <= value <= SPEED_RANGE[1]:
            raise ValueError(f'Speed must be between {SPEED_RANGE[0]} and {SPEED_RANGE[1]}')
        self.speed = value
        self.preset = 'custom'

    def apply_preset(self, name: str):
        key = name.lower().replace(' ', '_').replace('-', '_')
        if key not in PRESETS:
            raise ValueError(f"Unknown preset '{name}'. Available: {', '.join(PRESETS)}")
        self.bass, self.treble, self.speed = PRESETS[key]
        self.preset = key

    def reset(self):
        self.apply_preset('clear')

    @property
    def is_default(self) -> bool:
        return self.bass == 0 and self.treble == 0 and self.speed == 1.0

    def build_filter(self) -> Optional[str]:
        """ffmpeg -af chain, or None when every setting is neutral"""
        if self.is_default:
            return None
        parts = []
        if self.bass != 0:
            parts.append(f'equalizer=f=60:width_type=h:width=2:g={self.bass}')
        if self.treble != 0:
            parts.append(f'equalizer=f=10000:width_type=h:width=2:g={self.treble}')
        if self.speed != 1.0:
            parts.append(f'atempo={self.speed}')
        return ','.join(parts)

    def describe(self) -> str:
        return f'🎛️ Preset: {self.preset} | Bass: {self.bass:+d} dB | Treble: {self.treble:+d} dB | Speed: {self.speed}x'


# Global equalizer state
audio_filters = AudioFilterState()
