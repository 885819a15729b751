#!/usr/bin/env python

r"""
pbd.py - Copy JPEG photos into a tree organized by capture date

SUMMARY:
--------
This script lists the JPEG files found directly in a source directory, reads the
"Date Time Original" EXIF tag of each one and copies it into a destination tree
laid out as YYYY/MM/DD/. Files without a usable capture date are copied into a
NoExif/ folder instead. Source files are never modified, moved or deleted.

FEATURES:
---------
- Reads EXIF metadata with Pillow and piexif.
- Accepts both "YYYY:MM:DD HH:MM:SS" (standard EXIF) and "YYYY-MM-DD HH:MM:SS" dates.
- Never overwrites: a file already present at the destination is skipped and reported.
- Files whose metadata cannot be read are reported and left out of the copy.
- Dates in a format the tool does not know are flagged in the log for review.
- Dry run mode: report where every file would go without touching the destination.
- Logging to the console and to 'events.log' in the destination directory.

USAGE EXAMPLES:
---------------
1. Copy every JPG in a card dump into a dated archive:
    python pbd.py -s /media/card/DCIM/100CANON -d ~/Pictures/archive

2. Preview the result first, with per-file detail:
    python pbd.py -n -v -s /media/card/DCIM/100CANON -d ~/Pictures/archive

3. Copy without writing events.log into the archive:
    python pbd.py --no-log-file -s Z:\\photosync -d Z:\\archive

See --help for all options.
"""

# Standard library imports
import re
import sys
import struct
import calendar
import datetime
import logging
import shutil
import argparse
from dataclasses import dataclass
from pathlib import Path

# Third-party library imports for metadata extraction
import piexif
from PIL import Image
from PIL.JpegImagePlugin import JpegImageFile

# Script version information
__version__ = "1.0.0"
myversion = f"v. {__version__} 2026-10-19"

# Sub-path that receives every file without a derivable capture date
NO_EXIF_PATH = "NoExif/"

# Accepted capture-time layouts, tried in this order. Every field has a
# fixed width; a day past the end of its month is clamped to the last day.
DATE_FORMATS = (
    # conventional EXIF encoding, yyyy:MM:dd HH:mm:ss
    r"(?P<year>\d{4}):(?P<month>\d{2}):(?P<day>\d{2}) (?P<hour>\d{2}):(?P<minute>\d{2}):(?P<second>\d{2})",
    # non-conformant variant written by some tools, yyyy-MM-dd HH:mm:ss
    r"(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2}) (?P<hour>\d{2}):(?P<minute>\d{2}):(?P<second>\d{2})",
)

# Only files whose lower-cased name ends with this suffix are organized
IMAGE_SUFFIX = ".jpg"

LOG_FILE_NAME = "events.log"

# Reasons attached to a derived sub-path
DATED = "dated"
NO_METADATA = "no metadata"
NO_TAG = "no tag"
FORMAT_MISS = "format miss"

# Per-file outcomes of a copy
COPIED = "copied"
COLLISION = "collision"
FAILED = "failed"
DRY_RUN = "dry run"

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Source and/or destination cannot be used for a run."""


class UnsupportedMetadataError(Exception):
    """The file holds metadata in a container other than JPEG/EXIF."""


class DateFormatError(ValueError):
    """A capture date matched none of the accepted formats."""

    def __init__(self, value):
        super().__init__(f"Unrecognised date/time value: {value!r}")
        self.value = value


@dataclass(frozen=True)
class DerivedPath:
    """Destination sub-path of one image, and how it was obtained."""

    sub_path: str
    reason: str = DATED

    @property
    def is_fallback(self) -> bool:
        return self.reason != DATED


def _build_date_time(fields: dict) -> datetime.datetime:
    year, month, day = int(fields["year"]), int(fields["month"]), int(fields["day"])
    if not 1 <= day <= 31:
        raise ValueError(f"day out of range: {day}")
    if not 1 <= month <= 12:
        raise ValueError(f"month out of range: {month}")

    # 2009:02:30 resolves to 2009-02-28
    day = min(day, calendar.monthrange(year, month)[1])

    return datetime.datetime(
        year, month, day, int(fields["hour"]), int(fields["minute"]), int(fields["second"])
    )


def parse_date_time(value, formats=DATE_FORMATS) -> datetime.datetime:
    """
    Parse a raw capture-time value against each accepted format in turn.

    Args:
        value (str or bytes): Raw value of the capture-time tag
        formats (tuple): regular expressions with year, month, day, hour,
            minute and second groups, in priority order

    Returns:
        datetime.datetime: Result of the first pattern that matches

    Raises:
        DateFormatError: If no pattern matches the value, or the value is
            not text at all (a tag written as a number or a rational)

    Bytes are decoded as ASCII, as EXIF stores them. NUL padding and
    surrounding whitespace are ignored.
    """
    raw = value
    if isinstance(value, bytes):
        try:
            value = value.decode("ascii")
        except UnicodeDecodeError:
            raise DateFormatError(raw) from None
    elif not isinstance(value, str):
        raise DateFormatError(raw)

    text = value.strip().strip("\x00").strip()
    if not text:
        raise DateFormatError(raw)

    for pattern in formats:
        match = re.fullmatch(pattern, text, re.ASCII)
        if not match:
            continue
        try:
            return _build_date_time(match.groupdict())
        except ValueError:
            continue

    raise DateFormatError(raw)


def format_date_path(date) -> str:
    """Return the 'YYYY/MM/DD/' sub-path for a date."""
    return f"{date.year}/{date.month:02d}/{date.day:02d}/"


def derive_path(raw_value, log=logger) -> DerivedPath:
    """
    Turn the raw capture-time value of an image into a destination sub-path.

    Args:
        raw_value (str, bytes or None): Tag value, or None if the tag is absent
        log (logging.Logger): Logger for recording format misses

    Returns:
        DerivedPath: The dated sub-path, or NoExif/ with the reason it was chosen

    An absent tag is routine and goes to NoExif/ quietly. A present value in an
    unknown format also goes to NoExif/, but is logged as a warning since it
    may be a layout worth adding to DATE_FORMATS.
    """
    if raw_value is None:
        return DerivedPath(NO_EXIF_PATH, NO_TAG)

    try:
        date = parse_date_time(raw_value)
    except DateFormatError as e:
        log.warning(f"Error parsing date through available formats. Original value: {e.value!r}")
        return DerivedPath(NO_EXIF_PATH, FORMAT_MISS)

    return DerivedPath(format_date_path(date))


def read_capture_metadata(image: Path):
    """
    Read the decoded EXIF metadata of an image.

    Args:
        image (Path): File to read

    Returns:
        dict or None: piexif mapping of IFD name to {tag id: value}, or None
        when the image carries no EXIF block at all

    Raises:
        UnsupportedMetadataError: If the file is an image, but not a JPEG
        OSError: If the file cannot be read or is not an image
        ValueError: If the EXIF block is malformed
        Image.DecompressionBombError: If the declared image size is implausibly large
    """
    with Image.open(image) as img:
        # MPO files from multi-lens cameras subclass JpegImageFile
        if not isinstance(img, JpegImageFile):
            raise UnsupportedMetadataError(
                f"Not a valid metadata container. Expected '{JpegImageFile.__name__}' "
                f"but was '{type(img).__name__}'"
            )
        exif_bytes = img.info.get("exif")

    if not exif_bytes:
        return None

    return piexif.load(exif_bytes)


def find_date_time_original(metadata: dict):
    """Look up the capture-time tag, returning None when it is missing."""
    return metadata.get("Exif", {}).get(piexif.ExifIFD.DateTimeOriginal)


def extract_path(image: Path, log=logger):
    """
    Work out the destination sub-path of an image from its EXIF metadata.

    Args:
        image (Path): Image to inspect
        log (logging.Logger): Logger for recording issues

    Returns:
        DerivedPath or None: Sub-path for the image, or None if its metadata
        could not be read (the image should then be left alone)

    Read and decode problems are logged with the offending path and never
    raised, so that a single bad file cannot stop a run.
    """
    try:
        metadata = read_capture_metadata(image)
    except UnsupportedMetadataError as e:
        log.error(f"Error reading metadata on {image}: {e}")
        return None
    except (OSError, ValueError, IndexError, struct.error, Image.DecompressionBombError) as e:
        log.error(f"Error reading metadata on {image}: {e}")
        log.debug("Traceback:", exc_info=True)
        return None

    if metadata is None:
        # no exif there
        log.debug(f"No EXIF metadata in {image}")
        return DerivedPath(NO_EXIF_PATH, NO_METADATA)

    raw_value = find_date_time_original(metadata)
    log.debug(f"DateTimeOriginal of {image}: {raw_value!r}")

    derived = derive_path(raw_value, log)
    if derived.reason == FORMAT_MISS:
        log.error(
            f"Problems parsing EXIF date. {image} will be copied to {NO_EXIF_PATH}. "
            "Check the log for more details"
        )
    return derived


def ensure_directories(source_dir: Path, destination_dir: Path) -> bool:
    """
    Check that source and destination are two distinct, existing directories.

    Args:
        source_dir (Path): Directory holding the pictures
        destination_dir (Path): Directory receiving the organized copies

    Returns:
        bool: True if both directories can be used for a run
    """
    source_dir = Path(source_dir)
    destination_dir = Path(destination_dir)

    return (
        source_dir.is_dir()
        and destination_dir.is_dir()
        and source_dir.resolve() != destination_dir.resolve()
    )


def validate_args(source_dir: Path, destination_dir: Path):
    """Raise ConfigurationError unless ensure_directories() accepts the pair."""
    if not ensure_directories(source_dir, destination_dir):
        raise ConfigurationError(
            "Either source and/or destination are not valid directories, "
            f"don't exist or are the same: '{source_dir}', '{destination_dir}'"
        )


def list_images(source_dir: Path):
    """
    List the JPEG files directly inside a directory.

    Args:
        source_dir (Path): Directory to list (not descended into)

    Returns:
        list: Paths of regular files whose name ends in .jpg, in any case

    The listing is taken once, so files added while a run is in progress
    are not picked up.
    """
    return sorted(
        entry
        for entry in Path(source_dir).iterdir()
        if entry.name.lower().endswith(IMAGE_SUFFIX) and entry.is_file()
    )


def create_destination_dir(destination_dir: Path, sub_path: str, dryrun: bool = False) -> Path:
    """
    Resolve, and create if missing, the directory for a derived sub-path.

    Args:
        destination_dir (Path): Root of the organized tree
        sub_path (str): Sub-path such as '2009/12/31/' or 'NoExif/'
        dryrun (bool): Only resolve the directory, do not create it

    Returns:
        Path: The destination directory

    Creating a directory that already exists, including one created
    concurrently by another process, is not an error.
    """
    dest_dir = Path(destination_dir) / sub_path
    if not dryrun:
        dest_dir.mkdir(parents=True, exist_ok=True)
    return dest_dir


def copy_file(image: Path, dest_dir: Path, log=logger, dryrun: bool = False) -> str:
    """
    Copy an image into a directory, keeping its file name.

    Args:
        image (Path): Source file
        dest_dir (Path): Directory to copy into
        log (logging.Logger): Logger for recording the outcome
        dryrun (bool): Report the copy without performing it

    Returns:
        str: COPIED, COLLISION, FAILED or DRY_RUN

    An existing file at the destination is never overwritten. The existence
    check and the creation of the copy are one exclusive open, so a file that
    appears in between is not clobbered either.
    """
    dest_file = dest_dir / image.name

    if dryrun:
        if dest_file.exists():
            log.warning(f"File {image} already exists on destination ({dest_file}). Skipping [DRY RUN]")
            return COLLISION
        log.info(f"{image} -> {dest_file} [DRY RUN]")
        return DRY_RUN

    try:
        with open(image, "rb") as fsrc:
            try:
                fdst = open(dest_file, "xb")
            except FileExistsError:
                log.warning(f"File {image} already exists on destination ({dest_file}). Skipping")
                return COLLISION

            try:
                with fdst:
                    shutil.copyfileobj(fsrc, fdst)
            except OSError:
                # Do not leave a truncated copy behind
                dest_file.unlink()
                raise
    except OSError as e:
        log.error(f"Error copying {image} to destination. {e}")
        return FAILED

    # The bytes are in place at this point, only timestamps/permissions may be lost
    try:
        shutil.copystat(image, dest_file)
    except OSError as e:
        log.warning(f"Copied {image} but could not preserve its timestamps: {e}")

    log.info(f"{image} -> {dest_file} done.")
    return COPIED


def organize(source_dir: Path, destination_dir: Path, log=logger, dryrun: bool = False) -> dict:
    """
    Copy every JPEG of source_dir into a dated tree under destination_dir.

    Args:
        source_dir (Path): Directory holding the pictures
        destination_dir (Path): Root of the organized tree
        log (logging.Logger): Logger for per-file outcomes
        dryrun (bool): Report what would happen without creating anything

    Returns:
        dict: Count of scanned files and of each outcome

    Raises:
        ConfigurationError: If the directories are not usable. Nothing has
        been copied in that case.

    Each file is handled on its own. Failures are logged and counted but do
    not stop the run, and files already copied are left in place.
    """
    source_dir = Path(source_dir)
    destination_dir = Path(destination_dir)

    log.info(f"Copying from {source_dir.absolute()} to {destination_dir.absolute()}")
    validate_args(source_dir, destination_dir)

    stats = {
        "scanned": 0,
        "copied": 0,
        "collisions": 0,
        "failed": 0,
        "no_exif": 0,
        "format_miss": 0,
        "dry_run": 0,
    }

    for image in list_images(source_dir):
        stats["scanned"] += 1

        derived = extract_path(image, log)
        if derived is None:
            log.error(f"Skipping {image}: unable to work out its destination")
            stats["failed"] += 1
            continue

        if derived.is_fallback:
            stats["no_exif"] += 1
        if derived.reason == FORMAT_MISS:
            stats["format_miss"] += 1

        try:
            dest_dir = create_destination_dir(destination_dir, derived.sub_path, dryrun)
        except OSError as e:
            log.error(f"Failed to create destination subdir for {image}: {e}")
            stats["failed"] += 1
            continue

        outcome = copy_file(image, dest_dir, log, dryrun)
        if outcome == COPIED:
            stats["copied"] += 1
        elif outcome == COLLISION:
            stats["collisions"] += 1
        elif outcome == DRY_RUN:
            stats["dry_run"] += 1
        else:
            stats["failed"] += 1

    log.info(
        f"Done: {stats['scanned']} files scanned, {stats['copied']} copied, "
        f"{stats['collisions']} skipped as already present, {stats['failed']} failed "
        f"({stats['no_exif']} without EXIF date, {stats['format_miss']} with unknown date format)"
    )
    return stats


def set_up_logging(verbose: bool, destination_dir: Path = None):
    """
    Configure the module logger for a run.

    Args:
        verbose (bool): Whether to enable verbose (DEBUG) logging
        destination_dir (Path, optional): Directory in which to keep 'events.log'.
            Without it, records only go to the console.

    Returns:
        logging.Logger: Configured logger instance

    Handlers left over from an earlier run in the same process are closed
    and replaced.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)
    logger.propagate = False

    # Drop handlers from a previous call, their files may be gone
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)

    # Define a simple formatter that just prints the message
    formatter = logging.Formatter("%(message)s")

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if destination_dir is not None:
        logfile = Path(destination_dir) / LOG_FILE_NAME
        fh = logging.FileHandler(logfile, encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(formatter)
        logger.addHandler(fh)

    return logger


def parse_arguments(args=None):
    """
    Parse command line arguments using argparse.

    Args:
        args (list, optional): Command line arguments. Defaults to sys.argv[1:].

    Returns:
        argparse.Namespace: Parsed arguments

    Missing or malformed arguments make argparse print the usage and exit
    with status 2 before anything is processed.
    """
    parser = argparse.ArgumentParser(
        prog="pbd.py",
        description="Copy the JPEG files of a directory into a destination tree organized by EXIF capture date (YYYY/MM/DD). Files without a usable date go to NoExif/. Existing files are never overwritten.",
        epilog="""
IMPORTANT NOTES:
• Only files directly inside SOURCE ending in .jpg (any case) are considered
• Both SOURCE and DEST must already exist and must be different directories
• Operations are logged to 'events.log' in DEST unless --no-log-file is given""",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-s",
        "--source",
        required=True,
        help="Directory where the pictures are",
        metavar="SOURCE",
        dest="source_dir",
    )

    parser.add_argument(
        "-d",
        "--destination",
        required=True,
        help="Directory where to put the organized pictures",
        metavar="DEST",
        dest="destination_dir",
    )

    parser.add_argument(
        "-n",
        "--dry-run",
        action="store_true",
        help="Report where each file would be copied without creating directories or copying anything",
        dest="dryrun",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging, including the raw date value read from each file",
    )

    parser.add_argument(
        "--no-log-file",
        action="store_true",
        help=f"Log to the console only, do not write '{LOG_FILE_NAME}' in the destination directory",
        dest="no_log_file",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
        help="Show program version and exit",
    )

    return parser.parse_args(args)


def main(args=None):
    """
    Main entry point for the script.

    Args:
        args (list, optional): Command line arguments. Defaults to None.

    Exits with status 1 if the directories are unusable. Problems with
    individual files do not affect the exit status.
    """
    parsed_args = parse_arguments(args)

    # Convert string paths to Path objects and resolve them
    source_dir = Path(parsed_args.source_dir).expanduser().resolve()
    destination_dir = Path(parsed_args.destination_dir).expanduser().resolve()

    # events.log can only go into a destination that passed validation
    log_dir = None
    if not parsed_args.no_log_file and ensure_directories(source_dir, destination_dir):
        log_dir = destination_dir
    log = set_up_logging(parsed_args.verbose, log_dir)

    start_time = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    log.info("=" * 80)
    log.info(f"pbd - Photos By Date {myversion}")
    log.info(f"Session Started: {start_time}")
    log.info("=" * 80)
    log.debug("Command-line options: %s", vars(parsed_args))

    try:
        organize(source_dir, destination_dir, log, parsed_args.dryrun)
    except ConfigurationError as e:
        log.error(str(e))
        logging.shutdown()
        sys.exit(1)

    end_time = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    log.info("=" * 80)
    log.info(f"Session Ended: {end_time}")
    log.info("=" * 80)
    log.info("")  # Add blank line between sessions

    # Ensure all log messages are written
    logging.shutdown()


if __name__ == "__main__":
    main()
