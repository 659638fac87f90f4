from etcd_monitor.main import cli

cli()
