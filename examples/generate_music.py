#!/usr/bin/env python3
"""
Generate music from a text prompt, play it and/or save it.

Usage:
    # Mock engines (no downloads, silent ramp audio)
    python examples/generate_music.py --mock "lo-fi beat" --out beat.wav

    # Real models (downloaded to ~/.cache/musicgen-stream on first run)
    python examples/generate_music.py "80s synthwave with driving drums" --secs 10 --play
"""

import argparse
import logging

from musicgen_stream import (
    AudioConfig,
    AudioDeviceError,
    MusicGenConfig,
    SamplingConfig,
    create_pipeline,
)


def main():
    parser = argparse.ArgumentParser(description="musicgen-stream text-to-music")
    parser.add_argument("prompt", help="Text description of the music")
    parser.add_argument("--secs", type=float, default=10.0,
                        help="Seconds of audio to generate")
    parser.add_argument("--top-k", type=int, default=250)
    parser.add_argument("--temperature", type=float, default=1.0)
    parser.add_argument("--guidance", type=float, default=3.0,
                        help="Classifier-free guidance scale (<= 1 disables)")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--format", default="float32",
                        choices=["float32", "int32", "int16", "uint8"],
                        help="Output sample format")
    parser.add_argument("--out", default=None, help="WAV file to write")
    parser.add_argument("--play", action="store_true", help="Play through the default device")
    parser.add_argument("--force-download", action="store_true")
    parser.add_argument("--mock", action="store_true",
                        help="Use mock engines (no model files)")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    def on_download(name, done, total):
        if total:
            print(f"\r{name}: {100 * done / total:5.1f}%", end="", flush=True)
            if done >= total:
                print()

    cfg = MusicGenConfig()
    if args.mock:
        cfg = MusicGenConfig(num_hidden_layers=2, num_attention_heads=2, hidden_size=8)

    pipe = create_pipeline(
        cfg=cfg,
        sampling=SamplingConfig(
            top_k=args.top_k,
            temperature=args.temperature,
            guidance_scale=args.guidance,
            seed=args.seed,
        ),
        audio_cfg=AudioConfig(sample_rate=cfg.sample_rate, sample_format=args.format),
        mock=args.mock,
        force_download=args.force_download,
        on_download_progress=on_download,
    )

    def on_progress(done, total):
        print(f"\rDecoding {done}/{total}", end="", flush=True)

    try:
        samples = pipe.generate(args.prompt, args.secs, on_progress)
    except KeyboardInterrupt:
        pipe.cancel()
        print("\nStopped")
        return
    print()

    if args.out:
        path = pipe.save(args.out, samples)
        print(f"Saved {path}")

    if args.play:
        try:
            with pipe.play(samples) as stream:
                print(f"Playing {stream.duration.total_seconds():.1f}s, press Ctrl+C to stop")
                stream.wait()
        except AudioDeviceError as e:
            print(f"Playback unavailable: {e}")
        except KeyboardInterrupt:
            print("\nStopped")

    print("\nDone!")


if __name__ == "__main__":
    main()
