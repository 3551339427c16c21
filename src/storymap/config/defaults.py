"""Default configuration values for storymap."""

DEFAULT_CONFIG = {
    "project": {
        "name": "",
    },
    "directories": {
        "storyboard": "conception",
        "capability": "definition",
        "enabler": "definition",
        "test_scenario": "definition",
        "state": ".storymap",
    },
    "prefixes": {
        "storyboard": "STORY",
        "capability": "CAP",
        "enabler": "ENB",
        "test_scenario": "TS",
    },
    "files": {
        "storyboard": {"prefixes": ["STORY", "storyboard"], "contains": ["-story"]},
        "capability": {
            "prefixes": ["CAP-", "capability", "capabilities"],
            "contains": ["-capability"],
        },
        "enabler": {"prefixes": ["ENB-", "enabler"], "contains": ["-enabler"]},
        "test_scenario": {
            "prefixes": ["TS-", "test-scenario", "test_scenario", "testscenario"],
            "contains": ["-test-scenario"],
        },
    },
    "resolver": {
        "low_confidence_assignment": False,
    },
    "storyboards": {
        "narrative_order": [],
    },
    "layout": {
        "default": "layered",
        "layered": {
            "card_width": 180,
            "card_height": 80,
            "horizontal_gap": 100,
            "layer_gap": 120,
            "padding": 60,
        },
        "masonry": {
            "columns": 4,
            "column_width": 220,
            "origin_x": 100,
            "origin_y": 100,
            "element_spacing": 20,
            "group_spacing": 40,
            "sizes": {
                "capability": [160, 60],
                "enabler": [140, 50],
                "test_scenario": [120, 40],
            },
        },
    },
    "sync": {
        "quiet_period": 0.5,
    },
    "server": {
        "host": "127.0.0.1",
        "port": 5050,
    },
    "logging": {
        "level": "INFO",
        "file": "",
        "json": False,
    },
}
