"""
mgnrega_pipeline.pipelines — sync orchestration.

    data_sync.run()   one full fetch → normalize → reconcile run
    SyncScheduler     cron trigger + manual trigger with the staleness guard
                      and the single-run-at-a-time rule
"""
