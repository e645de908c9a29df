"""
wavpitch - frequency scanner CLI

Example usage:
    # Single file
    wavpitch path/to/audio.wav
    wavpitch --split-silence --stats-dir stats/ path/to/audio.wav

    # Batch processing
    wavpitch --batch path/to/directory/
    wavpitch --batch --recursive --format json --output-file results.json samples/
"""

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from wavpitch import __version__
from wavpitch.core.batch_processor import BatchProcessor
from wavpitch.core.codec import save_stats_file
from wavpitch.core.engine import PitchAnalysisResult, create_analysis_engine
from wavpitch.core.result_writer import create_result_writer
from wavpitch.utils.config import load_config
from wavpitch.utils.errors import PitchAnalysisError
from wavpitch.utils.logging import setup_logging
from wavpitch.utils.notes import note_name


def print_single_result(file_path: Path, result: PitchAnalysisResult, show_samples: bool = False) -> None:
    """Print the scan result for one file to the console."""
    stats = result.stats
    print("\n" + "=" * 60)
    print("WAVPITCH SCAN RESULTS")
    print("=" * 60)
    print(f"File: {file_path.name}")
    print(f"Audio: {result.sample_rate} Hz, {result.channels} ch, {result.duration:.3f}s")
    print(f"Processing Time: {result.processing_time:.3f}s")
    print("-" * 60)
    print(result.get_summary())
    print("-" * 60)

    if not result.has_pitch:
        return

    print(f"\n{stats}")
    print(f"\nTuned: {stats.tuned_freq:.2f} Hz ({note_name(stats.tuned_freq)})")
    print(f"Amplitude: avg {stats.avg_amp:.3f}, peak {stats.max_amp:.3f}")

    peaks = stats.get_amplitude_peaks()
    if peaks:
        print(f"\nAmplitude peaks:")
        for s in peaks:
            print(f"  {s.time:8.3f}s  {s.frequency:9.2f} Hz  {s.amplitude:.3f}")

    if show_samples:
        print(f"\nSamples:")
        for s in stats:
            print(f"  {s.time:8.3f}s  {s.frequency:9.2f} Hz  {s.amplitude:.3f}")


def apply_overrides(config: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Apply command-line switches on top of the loaded configuration."""
    if args.split_silence:
        config.setdefault('snippets', {})['enabled'] = True
    if args.multi_thread:
        config.setdefault('scanner', {})['multi_threaded'] = True
    if args.fill_gaps:
        config.setdefault('scanner', {})['fill_gaps'] = True
    return config


def analyze_single_file(
    audio_file: Path,
    config: Dict[str, Any],
    channel: int = 0,
    stats_dir: Optional[Path] = None,
    output_file: Optional[Path] = None,
    output_format: str = "text",
    show_samples: bool = False,
    verbose: bool = False,
) -> int:
    """
    Scan a single audio file.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    if not audio_file.exists():
        print(f"Error: Audio file not found: {audio_file}")
        return 1

    print(f"Analyzing: {audio_file}")
    engine = create_analysis_engine(config)

    try:
        result = engine.analyze(audio_file, channel)
        print_single_result(audio_file, result, show_samples)

        if stats_dir:
            suffix = config.get('output', {}).get('stats_suffix', '.fstats')
            stats_path = Path(stats_dir) / (audio_file.stem + suffix)
            if not save_stats_file(result.stats, stats_path):
                return 1
            print(f"\nStats saved to: {stats_path}")

        if output_file:
            writer = create_result_writer(output_format, include_samples=show_samples)
            writer.write({audio_file: result}, output_file)
            print(f"Results saved to: {output_file}")

        return 0

    except (PitchAnalysisError, OSError) as e:
        print(f"Error during analysis: {e}")
        if verbose:
            import traceback
            traceback.print_exc()
        return 1

    finally:
        engine.shutdown()


def analyze_batch(
    inputs: List[Path],
    config: Dict[str, Any],
    recursive: bool = False,
    channel: int = 0,
    stats_dir: Optional[Path] = None,
    output_file: Optional[Path] = None,
    output_format: str = "text",
    show_samples: bool = False,
) -> int:
    """
    Scan multiple audio files.

    Returns:
        Exit code (0 if every file succeeded, 1 otherwise)
    """
    engine = create_analysis_engine(config)

    def progress_callback(current: int, total: int, file_path: Path) -> None:
        print(f"[{current}/{total}] Processing: {file_path.name}")

    try:
        processor = BatchProcessor(
            engine=engine,
            stats_dir=stats_dir,
            stats_suffix=config.get('output', {}).get('stats_suffix', '.fstats'),
            channel=channel,
            progress_callback=progress_callback,
        )
        batch_result = processor.process(inputs, recursive=recursive)

        print("\n" + "=" * 60)
        print("BATCH PROCESSING COMPLETE")
        print("=" * 60)
        print(f"Total Files: {batch_result.total_files}")
        print(f"Successful: {batch_result.success_count}")
        print(f"Failed: {batch_result.failure_count}")
        print(f"Success Rate: {batch_result.success_rate:.1f}%")
        print(f"Total Time: {batch_result.total_time:.2f}s")

        for path, result in batch_result.successful.items():
            print(f"  {path.name}: {result.get_summary()}")

        if batch_result.failed:
            print("\nFailed Files:")
            for path, error in batch_result.failed.items():
                print(f"  {path.name}: {error}")

        if batch_result.exported:
            print(f"\nStats files written: {len(batch_result.exported)}")

        if output_file and batch_result.successful:
            writer = create_result_writer(output_format, include_samples=show_samples)
            writer.write(batch_result.successful, output_file)
            print(f"\nResults saved to: {output_file}")

        return 0 if batch_result.failure_count == 0 else 1

    finally:
        engine.shutdown()


def main():
    """Main entry point for the wavpitch CLI."""
    parser = argparse.ArgumentParser(
        prog="wavpitch",
        description="Scan audio files for their pitch over time",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Single file:
    wavpitch audio.wav
    wavpitch --channel 1 --samples audio.wav
    wavpitch --split-silence --stats-dir stats/ audio.wav

  Batch processing:
    wavpitch --batch samples/
    wavpitch --batch --recursive --multi-thread samples/
    wavpitch --batch --format json --output-file results.json samples/
        """
    )
    parser.add_argument("inputs", type=Path, nargs="+", help="Audio file(s) or directory to scan")
    parser.add_argument("--config", type=Path, default=None, help="Path to configuration file")
    parser.add_argument("--batch", "-b", action="store_true",
                        help="Batch mode for multiple files or directories")
    parser.add_argument("--recursive", "-r", action="store_true",
                        help="Search directories recursively (only with --batch)")
    parser.add_argument("--split-silence", "-s", action="store_true",
                        help="Scan each silence-separated snippet separately")
    parser.add_argument("--multi-thread", "-m", action="store_true",
                        help="Split each scan across threads")
    parser.add_argument("--fill-gaps", action="store_true",
                        help="Repeat the previous sample where no pitch is found")
    parser.add_argument("--channel", "-c", type=int, default=0, help="Channel to scan (default: 0)")
    parser.add_argument("--stats-dir", type=Path, default=None,
                        help="Directory to save binary .fstats files")
    parser.add_argument("--output-file", "-o", type=Path, default=None, help="Path to save a results report")
    parser.add_argument("--format", "-f", choices=["text", "json"], default="text",
                        help="Report format for --output-file (default: text)")
    parser.add_argument("--samples", action="store_true", help="Include every frequency sample in the output")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")
    parser.add_argument("--version", action="version", version=f"wavpitch {__version__}")

    args = parser.parse_args()

    config_path = str(args.config) if args.config else None
    try:
        config = load_config(config_path)
    except PitchAnalysisError as e:
        print(f"Error: {e}")
        sys.exit(1)
    config = apply_overrides(config, args)

    logging_config = config.get("logging", {})
    log_level = "DEBUG" if args.verbose else logging_config.get("level", "INFO")
    setup_logging(
        level=log_level,
        log_format=logging_config.get("format", "text"),
        log_file=logging_config.get("file"),
        colored=True,
        console_enabled=True,
    )

    is_batch = args.batch or len(args.inputs) > 1 or args.inputs[0].is_dir()

    if is_batch:
        exit_code = analyze_batch(
            inputs=args.inputs,
            config=config,
            recursive=args.recursive,
            channel=args.channel,
            stats_dir=args.stats_dir,
            output_file=args.output_file,
            output_format=args.format,
            show_samples=args.samples,
        )
    else:
        exit_code = analyze_single_file(
            audio_file=args.inputs[0],
            config=config,
            channel=args.channel,
            stats_dir=args.stats_dir,
            output_file=args.output_file,
            output_format=args.format,
            show_samples=args.samples,
            verbose=args.verbose,
        )

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
