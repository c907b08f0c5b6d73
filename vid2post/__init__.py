"""vid2post: turn one video URL into a drafted blog post.

- `vid2post.pipeline`: job, artifact store, stage executor and orchestrator
- `vid2post.media`: audio acquisition, transcription and thumbnail adapters
- `vid2post.llm`: text generation backends (Ollama HTTP, LangChain providers)
- `vid2post.publish`: document assembly and the Ghost Admin API client
"""

__version__ = "0.3.0"
