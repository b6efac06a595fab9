from hybrid_rag.chunking import split_documents
from hybrid_rag.keywords import extract_keywords
from hybrid_rag.knowledge_base import default_cases, load_default_documents


if __name__ == "__main__":
    docs = load_default_documents()
    chunks = split_documents(docs, chunk_size=220, chunk_overlap=60)
    print(
        {
            "docs": len(docs),
            "chunks": len(chunks),
            "cases": len(default_cases()),
            "terms": {case.question: extract_keywords(case.question) for case in default_cases()},
        }
    )
