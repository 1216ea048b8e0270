#!/usr/bin/env python3
"""
Word Chain Training and Generation Script

Command line front end for the transition table:

    wordchain train --datasets corpus.txt comments.csv --output model.json
    wordchain generate --model model.json --length 30 --count 3
    wordchain interactive --model model.json
    wordchain show --model model.json

Datasets are read and snapshots written here; the table itself never
touches the filesystem.
"""
import argparse
import os
import sys
import tempfile

from wordchain.data_preprocessing.corpus_reader import CorpusReader
from wordchain.models.markov_chain.errors import MarkovChainError
from wordchain.models.markov_chain.transition_table import TransitionTable
from wordchain.utils.config_loader import ConfigError, load_config
from wordchain.utils.loggers.json_logger import get_logger
from wordchain.utils.system_monitoring import ResourceMonitor

QUIT_COMMANDS = ("q", "quit")


class WordChainRunner:
    """
    Runs the train / generate / show pipeline for one configuration.

    Handles:
    1. Reading datasets into token sequences
    2. Training a transition table on them
    3. Exporting and loading snapshots
    4. Generating text from a loaded table
    """

    def __init__(self, config, logger, seed=None):
        """
        Args:
            config (dict): Merged configuration (see utils.config_loader)
            logger (logging.Logger): Logger for the run
            seed (int, optional): Overrides generation.seed from the config
        """
        self.config = config
        self.logger = logger
        self.seed = seed if seed is not None else config["generation"]["seed"]

        corpus = config["corpus"]
        self.reader = CorpusReader(
            lowercase=corpus["lowercase"],
            csv_text_column=corpus["csv_text_column"],
            csv_header=corpus["csv_header"],
            encoding=corpus["encoding"],
            logger=logger
        )
        self.resource_monitor = ResourceMonitor(logger=logger)

    def new_table(self):
        return TransitionTable(seed=self.seed, logger=self.logger)

    def train(self, dataset_paths, table=None):
        """
        Train a table on datasets, one sequence per line.

        Args:
            dataset_paths (list of str): Datasets to read, in order
            table (TransitionTable, optional): Table to extend instead of a new one

        Returns:
            TransitionTable: The trained table
        """
        table = table if table is not None else self.new_table()
        self.resource_monitor.start("word_chain_training")

        for index, dataset_path in enumerate(dataset_paths, start=1):
            sequences = 0
            transitions = 0
            for tokens in self.reader.iter_sequences([dataset_path]):
                transitions += table.ingest(tokens)
                sequences += 1

            self.resource_monitor.log_progress(
                f"Dataset trained: {dataset_path}",
                extra_metrics={
                    "dataset_index": index,
                    "dataset_count": len(dataset_paths),
                    "sequences": sequences,
                    "transitions": transitions,
                    "table": table.stats()
                }
            )

        duration = self.resource_monitor.stop()
        self.logger.info("Training completed", extra={
            "metrics": {**table.stats(), "training_time": duration}
        })
        return table

    def export_model(self, table, export_path):
        """
        Write a table snapshot to disk.

        The snapshot is written to a temporary file next to export_path and
        then moved over it, so an existing snapshot stays intact if writing
        fails.

        Returns:
            str: The path written
        """
        export_dir = os.path.dirname(os.path.abspath(export_path))
        os.makedirs(export_dir, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(
            dir=export_dir, prefix=f".{os.path.basename(export_path)}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(table.serialize())
            os.replace(tmp_path, export_path)
        except BaseException:
            os.unlink(tmp_path)
            raise

        self.logger.info("Model export completed", extra={
            "metrics": {
                "export_path": export_path,
                "file_size_kb": os.path.getsize(export_path) / 1024,
                **table.stats()
            }
        })
        return export_path

    def load_model(self, model_path):
        """
        Read a table snapshot from disk.

        Raises:
            FileNotFoundError: If the snapshot does not exist
            CorruptDataError: If the snapshot is malformed
        """
        with open(model_path, "rb") as f:
            blob = f.read()
        self.logger.info(f"Loading model: {model_path}")
        return TransitionTable.deserialize(blob, seed=self.seed, logger=self.logger)


def build_parser():
    parser = argparse.ArgumentParser(
        prog="wordchain",
        description="Train a word transition table and generate text from it")
    parser.add_argument("--env", choices=["development", "test", "production"],
                        default="development", help="Environment (default: development)")
    parser.add_argument("--config-dir", help="Directory with word_chain*.yaml files")
    parser.add_argument("--log-file", help="Write JSON logs to this file")
    parser.add_argument("--seed", type=int, help="Seed for reproducible generation")

    subparsers = parser.add_subparsers(dest="command", required=True)

    train_parser = subparsers.add_parser("train", help="Train a model and export it")
    train_parser.add_argument("--datasets", nargs="+", required=True,
                              help="Paths to dataset files (.txt or .csv)")
    train_parser.add_argument("--output", required=True, help="Snapshot file to write")
    train_parser.add_argument("--append", action="store_true",
                              help="Extend the snapshot at --output if it exists")

    generate_parser = subparsers.add_parser("generate", help="Generate text from a model")
    generate_parser.add_argument("--model", required=True, help="Snapshot file to load")
    generate_parser.add_argument("--length", type=int,
                                 help="Words generated after the first one")
    generate_parser.add_argument("--count", type=int, help="Number of lines to generate")

    interactive_parser = subparsers.add_parser(
        "interactive", help="Print a generated line each time Enter is pressed")
    source = interactive_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--model", help="Snapshot file to load")
    source.add_argument("--datasets", nargs="+", help="Train on these datasets first")
    interactive_parser.add_argument("--length", type=int,
                                    help="Words generated after the first one")

    show_parser = subparsers.add_parser("show", help="Print the transition grid")
    show_parser.add_argument("--model", required=True, help="Snapshot file to load")

    return parser


def run_interactive(table, length, stdin, stdout):
    """Print a line, wait for a line of input, repeat until EOF or quit."""
    while True:
        print(table.generate_text(length), file=stdout, flush=True)
        reply = stdin.readline()
        if not reply or reply.strip().lower() in QUIT_COMMANDS:
            break


def main(argv=None, stdin=None, stdout=None):
    """
    Entry point of the wordchain command.

    Returns:
        int: 0 on success, 1 when the command failed
    """
    args = build_parser().parse_args(argv)
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout

    try:
        config = load_config(environment=args.env, config_dir=args.config_dir)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    log_config = config["logging"]
    logger = get_logger(
        f"wordchain_{args.env}",
        log_file=args.log_file or log_config["log_file"],
        console_json=log_config["console_json"],
        level=log_config["level"]
    )
    runner = WordChainRunner(config, logger, seed=args.seed)
    generation = config["generation"]

    try:
        if args.command == "train":
            table = None
            if args.append and os.path.exists(args.output):
                table = runner.load_model(args.output)
            table = runner.train(args.datasets, table=table)
            runner.export_model(table, args.output)

        elif args.command == "generate":
            table = runner.load_model(args.model)
            length = args.length if args.length is not None else generation["length"]
            count = args.count if args.count is not None else generation["count"]
            for _ in range(count):
                print(table.generate_text(length), file=stdout)

        elif args.command == "interactive":
            if args.model:
                table = runner.load_model(args.model)
            else:
                table = runner.train(args.datasets)
            length = args.length if args.length is not None else generation["length"]
            run_interactive(table, length, stdin, stdout)

        elif args.command == "show":
            table = runner.load_model(args.model)
            print(table.render(), file=stdout)

    except (MarkovChainError, OSError, ValueError) as e:
        logger.error(f"Command '{args.command}' failed: {e}", extra={
            "metrics": {"error": str(e), "error_type": type(e).__name__}
        })
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


def cli():
    sys.exit(main())


if __name__ == "__main__":
    cli()
