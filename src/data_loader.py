from typing import List, NamedTuple, Tuple


class BenchOutline(NamedTuple):
    top_points: List[Tuple[float, float, float]]
    top_tags: List[str]
    bottom_points: List[Tuple[float, float, float]]
    bottom_tags: List[str]


SAMPLE_TOP_Z = 1951.0240478515625
SAMPLE_BOTTOM_Z = 1936.428955078125

_SAMPLE_XY = [
    (1181.0449398198234, 1018.8790263922049),
    (1130.7950548678843, 1023.8240149833414),
    (1140.4530354822111, 1032.329997626429),
    (1171.8889576284473, 1028.2720074378565),
    (1181.0449398198234, 1018.8790263922049),
]

# Free face along the first segment, contour on the rest
_SAMPLE_TAGS = ["1", "3", "3", "3", "1"]


def get_sample_bench() -> BenchOutline:
    """
    Returns the reference bench: a quadrilateral block with one free face,
    given as closed top and bottom strings with per-segment edge tags.
    """
    top = [(x, y, SAMPLE_TOP_Z) for x, y in _SAMPLE_XY]
    bottom = [(x, y, SAMPLE_BOTTOM_Z) for x, y in _SAMPLE_XY]
    return BenchOutline(top, list(_SAMPLE_TAGS), bottom, list(_SAMPLE_TAGS))


def get_square_bench(size: float = 20.0, top_z: float = 10.0, bottom_z: float = 0.0,
                     free_face: bool = True) -> BenchOutline:
    """
    Returns a square bench with its corner at the origin.

    Args:
        size: Side length of the square.
        top_z: Elevation of the top string.
        bottom_z: Elevation of the bottom string.
        free_face: If True the side along the x axis is a free face and the
            other three sides are contour. Otherwise every side is tagged
            as contour without a free face.
    """
    xy = [(0.0, 0.0), (size, 0.0), (size, size), (0.0, size), (0.0, 0.0)]
    tags = ["1", "3", "3", "3"] if free_face else ["4", "4", "4", "4"]
    top = [(x, y, top_z) for x, y in xy]
    bottom = [(x, y, bottom_z) for x, y in xy]
    return BenchOutline(top, list(tags), bottom, list(tags))
