#!/usr/bin/env python3
"""
ProjectConverter - Reaper ↔ DAWproject Converter

Converts Reaper projects (.rpp) into DAWproject files and back.
The direction follows the extension of the input file.
"""

import argparse
import logging
import sys
from pathlib import Path

from core.config import APP_NAME, APP_VERSION, ConverterSettings
from core.notifier import CancellationToken, LoggingNotifier
from core.task import create_task, output_path_for


def setup_logging(verbose: bool = False):
    """Configure logging"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(levelname)-8s | %(message)s'
    )


def convert_file(input_file: str, output_file: str = None, settings: ConverterSettings = None,
                 token: CancellationToken = None) -> bool:
    """
    Convert single file

    Args:
        input_file: Input .rpp or .dawproject file
        output_file: Output file (optional, next to the input)
        settings: Converter options
        token: Cancels the conversion

    Returns:
        True if successful
    """
    logger = logging.getLogger('projectconverter')

    input_path = Path(input_file)
    if not input_path.exists():
        logger.error(f"Input file not found: {input_file}")
        return False

    try:
        task = create_task(input_path, output_file, settings, LoggingNotifier(logger), token)
    except ValueError as e:
        logger.error(str(e))
        return False

    if not task.run():
        return False

    output_path = task.output
    if not output_path.exists():
        logger.error("Output file was not created")
        return False

    size = output_path.stat().st_size
    logger.info(f"✓ Success: {size:,} bytes")
    return True


def main():
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        prog='projectconverter',
        description=f'{APP_NAME} v{APP_VERSION} - Reaper ↔ DAWproject Converter',
        epilog='Supported files: .rpp, .rpp-bak, .dawproject'
    )

    parser.add_argument('-i', '--input', required=True,
                        help='Input .rpp or .dawproject file')
    parser.add_argument('-o', '--output',
                        help='Output file (default: next to the input)')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Verbose output')
    parser.add_argument('--external-audio', action='store_true',
                        help='Reference audio files instead of embedding them in the DAWproject')
    parser.add_argument('--force', action='store_true',
                        help='Replace an existing output file')
    parser.add_argument('--version', action='version',
                        version=f'{APP_NAME} v{APP_VERSION}')

    args = parser.parse_args()

    setup_logging(args.verbose)

    settings = ConverterSettings(
        do_not_compress_audio_files=args.external_audio,
        overwrite=args.force,
    )
    token = CancellationToken()

    # Header
    print("=" * 70)
    print(f"{APP_NAME} v{APP_VERSION}")
    print("Reaper ↔ DAWproject Converter")
    print("=" * 70)

    try:
        print(f"\nInput:  {args.input}")
        if args.output:
            print(f"Output: {args.output}")
        print("-" * 70)

        success = convert_file(args.input, args.output, settings, token)

        print("\n" + "=" * 70)
        if success:
            print("SUCCESS")
            print("=" * 70)
            output = args.output or str(output_path_for(args.input))
            print(f"Output: {output}")
        else:
            print("FAILED")
        print("=" * 70)

        return 0 if success else 1

    except KeyboardInterrupt:
        token.cancel()
        print("\n\nCancelled by user")
        return 130
    except Exception as e:
        print(f"\n\nFatal error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
