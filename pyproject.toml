[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gbahw"
version = "0.1.0"
description = "Cycle-level models of handheld console hardware: sound channels, sound mixer, DMA, interrupts, keypad and display registers"
requires-python = ">=3.10"
dependencies = []
keywords = ["emulator", "gba", "apu", "dma", "irq", "keypad", "ppu", "sound", "hardware"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: System :: Emulators",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["gbahw"]

[tool.pytest.ini_options]
addopts = "-ra"
