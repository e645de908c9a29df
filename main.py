"""
wavpitch - Main Entry Point

Example usage:
    python main.py path/to/audio.wav
    python main.py --config config/config.yaml --split-silence path/to/audio.wav
"""

from wavpitch.cli import main


if __name__ == "__main__":
    main()
