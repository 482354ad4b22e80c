"""
Per-image metadata (EXIF and GPano XMP) for the canopy report.
"""

import logging
import re
from typing import Any, Dict, Iterable, Optional

from PIL import Image
from PIL.ExifTags import GPSTAGS, TAGS

logger = logging.getLogger(__name__)

DEFAULT_FIELDS = ('SourceFile', 'Make', 'Model', 'ImageWidth', 'ImageHeight', 'Megapixels')

OPTIONAL_FIELDS = ('FullPanoWidthPixels', 'FullPanoHeightPixels', 'SourcePhotosCount',
                   'GPSLatitude', 'GPSLongitude', 'GPSAltitude', 'PoseHeadingDegrees')

_TAG_IDS = {name: tag_id for tag_id, name in TAGS.items()}
_GPS_IFD = 0x8825
_XMP_MARKER = b'http://ns.adobe.com/xap/1.0/'
_GPANO_FIELDS = ('FullPanoWidthPixels', 'FullPanoHeightPixels', 'SourcePhotosCount', 'PoseHeadingDegrees')


def _convert_to_degrees(value):
    """Convert GPS DMS (degrees, minutes, seconds) to decimal degrees."""
    d = float(value[0])
    m = float(value[1])
    s = float(value[2])
    return d + (m / 60.0) + (s / 3600.0)


def _gps_values(exif) -> Dict[str, float]:
    gps_raw = exif.get_ifd(_GPS_IFD)
    if not gps_raw:
        return {}
    gps = {GPSTAGS.get(tag_id, tag_id): value for tag_id, value in gps_raw.items()}

    values = {}
    if gps.get('GPSLatitude') and gps.get('GPSLatitudeRef'):
        lat = _convert_to_degrees(gps['GPSLatitude'])
        values['GPSLatitude'] = -lat if gps['GPSLatitudeRef'] == 'S' else lat
    if gps.get('GPSLongitude') and gps.get('GPSLongitudeRef'):
        lon = _convert_to_degrees(gps['GPSLongitude'])
        values['GPSLongitude'] = -lon if gps['GPSLongitudeRef'] == 'W' else lon
    if gps.get('GPSAltitude') is not None:
        altitude = float(gps['GPSAltitude'])
        values['GPSAltitude'] = -altitude if gps.get('GPSAltitudeRef') in (1, b'\x01') else altitude
    return values


def _xmp_packet(img: Image.Image) -> bytes:
    packet = img.info.get('xmp')
    if packet:
        return packet if isinstance(packet, bytes) else str(packet).encode('utf-8')
    for marker, payload in getattr(img, 'applist', []):
        if marker == 'APP1' and payload.startswith(_XMP_MARKER):
            return payload
    return b''


def parse_gpano(packet: bytes) -> Dict[str, float]:
    """Read GPano panorama properties from an XMP packet (attribute or element form)."""
    values = {}
    text = packet.decode('utf-8', errors='ignore')
    for name in _GPANO_FIELDS:
        match = re.search(rf'GPano:{name}\s*=\s*"([^"]+)"', text) or \
            re.search(rf'<GPano:{name}>([^<]+)</GPano:{name}>', text)
        if match:
            try:
                values[name] = float(match.group(1))
            except ValueError:
                logger.warning(f"Ignoring non-numeric GPano:{name} value '{match.group(1)}'")
    return values


def read_image_metadata(image_path: str, fields: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    """
    Collect the requested metadata fields for one image.

    Fields that cannot be read are None; an unreadable file only logs a
    warning, the decode failure itself is reported by the pipeline.
    """
    fields = tuple(fields or DEFAULT_FIELDS)
    record = {name: None for name in fields}
    if 'SourceFile' in record:
        record['SourceFile'] = str(image_path)

    try:
        with Image.open(image_path) as img:
            width, height = img.size
            exif = img.getexif()
            available = {
                'Make': exif.get(_TAG_IDS['Make']),
                'Model': exif.get(_TAG_IDS['Model']),
                'ImageWidth': width,
                'ImageHeight': height,
                'Megapixels': round(width * height / 1e6, 3),
            }
            available.update(_gps_values(exif))
            available.update(parse_gpano(_xmp_packet(img)))
    except OSError as e:
        logger.warning(f"Could not read metadata from {image_path}: {e}")
        return record

    for name in fields:
        value = available.get(name)
        if isinstance(value, str):
            value = value.strip('\x00 ').strip()
        if value is not None:
            record[name] = value
    return record
