#!/usr/bin/env python
"""
Run Document to Video Pipeline

Simple script to turn a PDF or PPTX into a narrated video using configuration files.
"""

import argparse
import asyncio
import logging
from pathlib import Path

from slidecast.pipeline import PipelineJob, SlideshowPipeline
from configs import PipelineConfig


def print_progress(job: PipelineJob):
    line = f"[{job.progress:3d}%] {job.phase.value}"
    if job.status_message:
        line += f": {job.status_message}"
    print(line)


async def main():
    parser = argparse.ArgumentParser(description='Convert a PDF or PPTX document to a narrated video')
    parser.add_argument('document', help='Path to PDF or PPTX file')
    parser.add_argument('--config', help='Configuration file path (optional)')
    parser.add_argument('--output', help='Output video path (optional)')
    parser.add_argument('--use-notes', action='store_true', help='Narrate PPTX speaker notes as they are')
    parser.add_argument('--export-deck', help='Also write a PPTX with the generated speaker notes')
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    # Load configuration
    if args.config:
        print(f"Loading configuration from: {args.config}")
        config = PipelineConfig.load(args.config)
    else:
        config = PipelineConfig()

    # Validate configuration
    if not config.validate():
        print("Configuration validation failed!")
        return 1

    pipeline = SlideshowPipeline(config, progress_callback=print_progress)

    print(f"\nProcessing: {args.document}")
    print(f"Output directory: {config.output_dir}")
    print(f"Video resolution: {config.video_resolution[0]}x{config.video_resolution[1]}")
    print(f"Voice: {config.voice_name}")
    print("\nStarting conversion...\n")

    try:
        presentation = await pipeline.analyze(args.document, use_existing_notes=args.use_notes)
        if args.export_deck:
            deck_path = pipeline.export_deck(presentation, Path(args.export_deck))
            print(f"Deck exported: {deck_path}")

        artifact = await pipeline.render_video(presentation)
        video_path = pipeline.save_artifact(artifact, args.output)

        print(f"\n✓ Success! Video created: {video_path} ({artifact.duration:.1f}s, {artifact.mime_type})")
        return 0

    except Exception as e:
        print(f"\n✗ Error: {e}")
        logging.getLogger(__name__).debug("Pipeline failed", exc_info=True)
        return 1

    finally:
        await pipeline.aclose()


if __name__ == "__main__":
    # Example usage:
    # python run_pipeline.py slides.pdf
    # python run_pipeline.py slides.pdf --config configs/high_quality.json
    # python run_pipeline.py deck.pptx --use-notes --output my_video.webm
    # python run_pipeline.py slides.pdf --export-deck output/slides_with_notes.pptx

    raise SystemExit(asyncio.run(main()))
