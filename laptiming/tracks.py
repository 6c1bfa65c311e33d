"""
Built-in Track Definitions for GPS Lap Timing

Hard-coded catalog of circuits with simplified outlines. Coordinates are
approximate and intended for track detection and demo sessions; callers
with surveyed geometry should build their own TrackCatalog.
"""

from typing import List

from .catalog import TrackCatalog
from .models import GeoPoint, SectorBoundary, StartFinishLine, TrackGeometry


def _points(*coords) -> tuple:
    return tuple(GeoPoint(lat, lng) for lat, lng in coords)


SILVERSTONE = TrackGeometry(
    id="silverstone-gp",
    name="Silverstone Circuit",
    start_finish=StartFinishLine(
        point1=GeoPoint(52.0786, -1.0169, 150.0),
        point2=GeoPoint(52.0784, -1.0165, 150.0),
        bearing_deg=180.0,
        width_m=15.0,
    ),
    sectors=(
        SectorBoundary(1, GeoPoint(52.0786, -1.0169), GeoPoint(52.0800, -1.0145), 1980.0, "Sector 1"),
        SectorBoundary(2, GeoPoint(52.0800, -1.0145), GeoPoint(52.0745, -1.0150), 2011.0, "Sector 2"),
        SectorBoundary(3, GeoPoint(52.0745, -1.0150), GeoPoint(52.0786, -1.0169), 1900.0, "Sector 3"),
    ),
    outline=_points(
        (52.0786, -1.0169), (52.0790, -1.0165), (52.0795, -1.0160), (52.0800, -1.0145),
        (52.0785, -1.0130), (52.0770, -1.0125), (52.0755, -1.0135), (52.0745, -1.0150),
        (52.0750, -1.0175), (52.0765, -1.0185), (52.0780, -1.0175),
    ),
)

SPA = TrackGeometry(
    id="spa-francorchamps",
    name="Circuit de Spa-Francorchamps",
    start_finish=StartFinishLine(
        point1=GeoPoint(50.4372, 5.9714, 400.0),
        point2=GeoPoint(50.4370, 5.9710, 400.0),
        bearing_deg=90.0,
        width_m=15.0,
    ),
    sectors=(
        SectorBoundary(1, GeoPoint(50.4372, 5.9714), GeoPoint(50.4425, 5.9801), 2344.0, "Eau Rouge Complex"),
        SectorBoundary(2, GeoPoint(50.4425, 5.9801), GeoPoint(50.4321, 6.0089), 2493.0, "Les Combes to Pouhon"),
        SectorBoundary(3, GeoPoint(50.4321, 6.0089), GeoPoint(50.4372, 5.9714), 2167.0, "Stavelot to La Source"),
    ),
    outline=_points(
        (50.4372, 5.9714), (50.4380, 5.9720), (50.4390, 5.9730), (50.4425, 5.9801),
        (50.4440, 5.9850), (50.4420, 5.9920), (50.4380, 6.0000), (50.4321, 6.0089),
        (50.4280, 6.0050), (50.4250, 5.9980), (50.4298, 5.9867), (50.4350, 5.9750),
    ),
)

MONZA = TrackGeometry(
    id="monza",
    name="Autodromo Nazionale di Monza",
    start_finish=StartFinishLine(
        point1=GeoPoint(45.6156, 9.2811, 162.0),
        point2=GeoPoint(45.6154, 9.2809, 162.0),
        bearing_deg=0.0,
        width_m=15.0,
    ),
    sectors=(
        SectorBoundary(1, GeoPoint(45.6156, 9.2811), GeoPoint(45.6189, 9.2756), 1932.0, "Curva Grande Complex"),
        SectorBoundary(2, GeoPoint(45.6189, 9.2756), GeoPoint(45.6078, 9.2701), 1839.0, "Lesmo Complex"),
        SectorBoundary(3, GeoPoint(45.6078, 9.2701), GeoPoint(45.6156, 9.2811), 2022.0, "Parabolica"),
    ),
    outline=_points(
        (45.6156, 9.2811), (45.6170, 9.2820), (45.6189, 9.2756), (45.6180, 9.2700),
        (45.6150, 9.2650), (45.6100, 9.2680), (45.6078, 9.2701), (45.6090, 9.2750),
        (45.6110, 9.2800), (45.6123, 9.2889), (45.6145, 9.2850),
    ),
)

BUILTIN_TRACKS: List[TrackGeometry] = [SILVERSTONE, SPA, MONZA]


def builtin_catalog() -> TrackCatalog:
    """Load the built-in tracks into a new TrackCatalog."""
    return TrackCatalog.load(BUILTIN_TRACKS)
