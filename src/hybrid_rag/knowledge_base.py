from __future__ import annotations

from dataclasses import asdict
import json
from pathlib import Path

from .schema import Document, EvaluationCase

# Several retrieval topics, two noise documents, and exact-match material
# (IDs, field names) that vector similarity tends to under-rank.
DEFAULT_DOCUMENTS: tuple[tuple[str, str, str], ...] = (
    (
        "rag_intro",
        "rag",
        """RAG（Retrieval Augmented Generation，检索增强生成）是一种“先检索、再生成”的架构：
1) 把用户问题转成向量并在向量库里检索相关 chunk
2) 把检索到的 chunk 拼成上下文
3) 让大模型只能基于上下文回答

关键点：检索到 ≠ 可用。需要做质量控制（例如相似度阈值），否则模型会被噪声上下文带偏。""",
    ),
    (
        "vector_vs_keyword",
        "retrieval",
        """向量检索擅长语义相似（同义表达、不同说法），但对“精确匹配”不敏感：
- 专有名词（接口名、字段名）
- ID（例如 user_123）
- 代码片段（例如 getUserById）
这类问题通常需要关键词检索或规则检索兜底。""",
    ),
    (
        "similarity_threshold",
        "retrieval",
        """相似度阈值（quality gate）的目标是：宁可没有上下文，也不要把低质量上下文喂给模型。
Retriever 往往会“无论如何返回 k 条”，所以工程上通常要做：
- 取 top-k
- 再做阈值过滤（低于阈值的直接丢弃）
- 如果过滤后为空，触发兜底（例如“我不知道”）""",
    ),
    (
        "keyword_retrieval",
        "retrieval",
        """关键词检索（极简版思路）：
- 从问题里抽取关键词（中文短语、英文 token、user_\\d+ 这类模式）
- 在文本里做 contains / 计数
- 以命中数/权重作为分数

生产里常用 BM25/全文索引（Elastic/Lucene/PG FTS），这里用“可解释的小实现”演示它的价值。""",
    ),
    (
        "hybrid",
        "retrieval",
        """Hybrid 检索（混合检索）常见做法：向量检索召回语义相关内容，关键词检索召回精确命中内容，然后合并、去重、排序。
一个直觉：如果一个 chunk 同时被语义检索和关键词检索命中，它往往更可靠（可以给一个小的加分）。""",
    ),
    (
        "user_id_rule",
        "business",
        """账号体系约定：
- 用户 ID 格式：user_xxx，其中 xxx 是数字（例如 user_1、user_42、user_123）。
- 任何不符合该格式的字符串都不是合法用户 ID（例如 user_abc 不合法）。""",
    ),
    (
        "api_login",
        "business",
        """接口字段说明（节选）：
POST /login
Request JSON:
- user_id: string，例如 "user_123"
- password: string

备注：字段名是 user_id（下划线），不是 userid / userId。""",
    ),
    (
        "memory_vectorstore",
        "vectorstore",
        """我们在 Demo 中使用内存向量库做向量检索：
- 优点：无需外部依赖，适合本地学习与快速验证
- 缺点：不持久化、不适合生产、数据量大时性能有限""",
    ),
    (
        "embedding_basics",
        "embedding",
        """Embedding 是把文本映射到向量空间的过程：语义相近的文本向量更接近。
注意：Embedding 模型不负责“回答问题”，它只负责把文本变成向量用于检索。""",
    ),
    (
        "noise_cooking",
        "noise",
        "厨房小贴士：煎牛排之前让肉回温 20 分钟更容易受热均匀；盐最好在煎后撒，避免出水影响上色。",
    ),
    (
        "noise_travel",
        "noise",
        "旅行备忘：冬季去北海道注意防滑鞋；在札幌雪天步行建议走地下通道连接的商业区。",
    ),
)

DEFAULT_CASES: tuple[tuple[str, str, bool], ...] = (
    ("概念：RAG", "什么是 RAG？", True),
    ("质量闸门", "为什么需要相似度阈值？", True),
    ("混合检索", "什么是 Hybrid 检索？", True),
    ("精确字段", "login 接口的 user_id 字段名是什么？", True),
    ("精确 ID 规则", "user_abc 是合法的吗？user_123 呢？", True),
    ("无关问题应兜底", "北海道冬天怎么玩？", False),
)


def load_default_documents() -> list[Document]:
    return [Document(source_id=source_id, text=text, topic=topic) for source_id, topic, text in DEFAULT_DOCUMENTS]


def default_cases() -> list[EvaluationCase]:
    return [EvaluationCase(name=name, question=question, expected_hit=expected) for name, question, expected in DEFAULT_CASES]


def save_default_dataset(output_dir: str = "data") -> tuple[Path, Path]:
    """Write the built-in documents and cases as JSONL files.

    Args:
        output_dir: Destination directory for `documents.jsonl` and `cases.jsonl`.

    Returns:
        Paths of the written documents and cases files.
    """
    target = Path(output_dir)
    target.mkdir(parents=True, exist_ok=True)

    documents_path = target / "documents.jsonl"
    cases_path = target / "cases.jsonl"
    with documents_path.open("w", encoding="utf-8") as file_handle:
        for document in load_default_documents():
            file_handle.write(json.dumps(asdict(document), ensure_ascii=False) + "\n")
    with cases_path.open("w", encoding="utf-8") as file_handle:
        for case in default_cases():
            file_handle.write(json.dumps(asdict(case), ensure_ascii=False) + "\n")
    return documents_path, cases_path
