"""
core/__init__.py

Core orchestration and routing modules.

This package contains the central coordination logic of the conversation router:
- stage: BaseStage, the lifecycle shared by every pipeline stage
- circuit_breaker: Named CLOSED/OPEN/HALF_OPEN guards for upstream services
- classifier: LLM-backed routing classifier used as the router's fallback rule
- router: Priority-ordered routing rules and process continuity
- error_handler: Recovery stage that apologizes and hands back to the router
- workflow: The stage loop that runs one turn
- orchestrator: Turn handling around the workflow (threads, checkpoints, delivery)

Submodules are imported explicitly by their users; nothing is re-exported here.
"""
