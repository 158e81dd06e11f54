"""Client-side capture pipeline: microphone, live transcript and controller."""
