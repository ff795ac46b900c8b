from __future__ import annotations

# Sequencer clock constant: speed value = SPEED_CONSTANT / bpm.
SPEED_CONSTANT = 314140.625


def bpm_to_speed(bpm: float) -> int:
    """CMI sequencer speed setting for a tempo in beats per minute."""
    if bpm <= 0:
        raise ValueError(f"bpm must be positive, got {bpm}")
    return round(SPEED_CONSTANT / bpm)
