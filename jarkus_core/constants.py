"""Core constants shared across configuration helpers."""

JARKUS_ENDPOINT = "https://opendap.deltares.nl/thredds/dodsC/opendap/rijkswaterstaat/jarkus/profiles/transect.nc"
COASTLINE_ENDPOINT = "https://opendap.deltares.nl/thredds/dodsC/opendap/rijkswaterstaat/BKL_TKL_MKL/MKL.nc"

VALID_DATASETS = (
    "profile",
    "catalog",
    "areas",
    "reference_points",
    "water_level",
    "coastline",
)
DEFAULT_RUNTIME_PATHS = {
    "cache_dir": "opendap_cache",
    "out_dir": "output",
}
DEFAULT_FETCH_SETTINGS = {
    "timeout_seconds": 30.0,
    "catalog_endpoint": JARKUS_ENDPOINT,
    "catalog_size": 2465,
}
DEFAULT_CACHE_SETTINGS = {
    "max_entry_chars": 5_000_000,
}
DEFAULT_PARSING_SETTINGS = {
    "sentinel": -9999,
    "time_units": None,
}
DEFAULT_DATASETS = {
    "profile": {
        "endpoint": JARKUS_ENDPOINT,
        "time_size": 60,
        "cross_shore_size": 1925,
        "variables": {
            "time": "time",
            "cross_shore": "cross_shore",
            "altitude": "altitude[0:1:{time_last}][{index}:1:{index}][0:1:{cross_shore_last}]",
        },
    },
    "areas": {
        "endpoint": JARKUS_ENDPOINT,
        "variables": {
            "areacode": "areacode",
            "areaname": "areaname",
        },
    },
    "reference_points": {
        "endpoint": JARKUS_ENDPOINT,
        "variables": {
            "rsp_x": "rsp_x[{index}:1:{index}]",
            "rsp_y": "rsp_y[{index}:1:{index}]",
            "rsp_lat": "rsp_lat[{index}:1:{index}]",
            "rsp_lon": "rsp_lon[{index}:1:{index}]",
        },
    },
    "water_level": {
        "endpoint": JARKUS_ENDPOINT,
        "time_size": 60,
        "time_variable": "time",
        "value_variables": ["mean_high_water", "mean_low_water"],
        "variables": {
            "time": "time",
            "mean_high_water": "mean_high_water[0:1:{time_last}][{index}:1:{index}]",
            "mean_low_water": "mean_low_water[0:1:{time_last}][{index}:1:{index}]",
        },
    },
    "coastline": {
        "endpoint": COASTLINE_ENDPOINT,
        "time_size": 60,
        "time_variable": "time",
        "value_variables": ["momentary_coastline"],
        "variables": {
            "time": "time",
            "momentary_coastline": "momentary_coastline[0:1:{time_last}][{index}:1:{index}]",
        },
    },
}
