"""Result-processing pipeline.

  - JobClaimCoordinator: claim/lifecycle state machine over the backlog table
  - ItemPipeline: the three per-item phases (analyze → positions → sentiment)
  - BacklogProcessor: batch vs serialized execution, circuit breaker
  - schedule_backlog_processing(): detached background runs
"""
