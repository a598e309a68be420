#!/usr/bin/env python3
"""List audio input devices usable with --device"""
import sounddevice as sd

print("Available Input Devices:\n")
devs = sd.query_devices()
default_input = sd.default.device[0]
for i, d in enumerate(devs):
    in_ch = d['max_input_channels']
    if in_ch <= 0:
        continue
    sr = d['default_samplerate']
    marker = " (default)" if i == default_input else ""
    print(f"[{i}] {d['name']}{marker}")
    print(f"    Input: {in_ch} channels")
    print(f"    Default SR: {sr} Hz")
    print()
