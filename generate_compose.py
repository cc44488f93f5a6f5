#!/usr/bin/env python3
"""
Helper script to generate docker-compose.yml with one coordinator and N workers.
Usage: python generate_compose.py 4 [-m BYTES] [file ...]
Files are paths inside ./txt, which is mounted at /app/txt.
"""

import argparse

from settings import DEFAULT_CHUNK_BYTES, MAX_FILES, WORKER_PORT

MAX_WORKERS = 20


def generate_docker_compose(num_workers, files=("input.txt",), chunk_bytes=DEFAULT_CHUNK_BYTES):
    """Generate docker-compose.yml with specified number of workers"""
    file_args = " ".join(f"-f txt/{name}" for name in files)

    yaml_content = f"""services:
  # Coordinator service - cuts files into chunks and aggregates counts
  coordinator:
    build: .
    container_name: coordinator
    hostname: coordinator
    command: python coordinator.py {file_args} -m {chunk_bytes}
    networks:
      - wordstats-network
    environment:
      - NUM_WORKERS={num_workers}
      - STARTUP_DELAY=5
    volumes:
      - ./txt:/app/txt
    depends_on:
"""

    for i in range(1, num_workers + 1):
        yaml_content += f"      - worker-{i}\n"

    for i in range(1, num_workers + 1):
        yaml_content += f"""
  worker-{i}:
    build: .
    container_name: worker-{i}
    hostname: worker-{i}
    command: python worker.py --port {WORKER_PORT}
    networks:
      - wordstats-network
"""

    yaml_content += """
networks:
  wordstats-network:
    driver: bridge
"""

    return yaml_content


def worker_count(text):
    try:
        n = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError("Please provide a valid number") from None
    if n < 1 or n > MAX_WORKERS:
        raise argparse.ArgumentTypeError(f"Number of workers must be between 1 and {MAX_WORKERS}")
    return n


def main(argv=None):
    parser = argparse.ArgumentParser(description="Generate docker-compose.yml")
    parser.add_argument("num_workers", type=worker_count)
    parser.add_argument("files", nargs="*", default=["input.txt"])
    parser.add_argument("-m", dest="chunk_bytes", type=int, default=DEFAULT_CHUNK_BYTES)
    parser.add_argument("-o", dest="output", default="docker-compose.yml")
    args = parser.parse_args(argv)
    if len(args.files) > MAX_FILES:
        parser.error(f"can only process {MAX_FILES} files at a time")

    yaml_content = generate_docker_compose(args.num_workers, args.files, args.chunk_bytes)

    with open(args.output, "w") as f:
        f.write(yaml_content)

    print(f"✓ Generated {args.output} with {args.num_workers} workers")
    print("  Run: docker compose up --build")


if __name__ == "__main__":
    main()
