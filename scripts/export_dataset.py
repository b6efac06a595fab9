from hybrid_rag.knowledge_base import save_default_dataset


def main() -> None:
    """Write the built-in knowledge base and case set as editable JSONL files."""
    documents_path, cases_path = save_default_dataset(output_dir="data")
    print(f"Generated {documents_path} and {cases_path}")


if __name__ == "__main__":
    main()
