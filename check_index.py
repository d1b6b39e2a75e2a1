"""Manual check of the document index and keyword retrieval."""

import os
import sys
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

print("=" * 60)
print("CHECKING DOCUMENT INDEX")
print("=" * 60)

document_path = os.getenv("DOCUMENT_PATH", "docs/huong_dan_dich_vu_cong.txt")
query = " ".join(sys.argv[1:]) or "Làm thế nào để đăng ký tài khoản VNeID?"

print(f"\n[ENV] DOCUMENT_PATH: {document_path}")
print(f"[ENV] Query: {query}")

try:
    from tools import DocumentIndex, RAGTool, extract_keywords, format_context

    index = DocumentIndex(document_path)
    if not index.load():
        print("\n[ERROR] Document could not be indexed")
        sys.exit(1)

    stats = index.stats()
    print(f"\n[INDEX] Total chunks: {stats.total_chunks}")
    print(f"[INDEX] Chunk size min/max/avg: {stats.min_size}/{stats.max_size}/{stats.avg_size}")
    print(f"[INDEX] By kind: {stats.by_kind}")
    print(f"[INDEX] Chapters ({stats.chapter_count}):")
    for chapter in index.chapters():
        print(f"  - {chapter}")

    print(f"\n[SEARCH] Keywords: {sorted(extract_keywords(query))}")
    result = RAGTool(index).rag_query(query, top_k=3)

    print(f"[RESULT] Success: {result.get('success')}")
    print(f"[RESULT] Error: {result.get('error')}")
    print(f"[RESULT] Sources count: {len(result.get('chunks', []))}")

    if result.get("chunks"):
        print("\n" + format_context(result["chunks"]))

except Exception as e:
    print(f"\n[EXCEPTION] {type(e).__name__}: {str(e)}")
    import traceback
    traceback.print_exc()

print("\n" + "=" * 60)
