"""
模块职责
- 提供提交爬取运行和查询运行状态的 RESTful API；
- 使用 Flask Blueprint 将接口统一挂载在 `/api/crawl` 前缀下。

设计说明
- 接口层只做输入输出转换，运行的编排在 `CrawlerService` 中；
- 依赖在应用工厂中组装，存放在 `app.extensions['tarantula']`，测试时可以注入替身。
"""

from flask import Blueprint, current_app, jsonify, request

from ..domain.exceptions import InvalidRunConfigError, RunNotFoundError
from ..domain.value_objects.run_config import RunConfig

bp = Blueprint("crawl", __name__, url_prefix="/api/crawl")


def _service():
    return current_app.extensions["tarantula"]["crawler_service"]


def _logging_handler():
    return current_app.extensions["tarantula"].get("logging_handler")


@bp.errorhandler(InvalidRunConfigError)
def handle_invalid_config(e):
    body = {"error": str(e)}
    if e.field:
        body["field"] = e.field
    return jsonify(body), 400


@bp.errorhandler(RunNotFoundError)
def handle_run_not_found(e):
    return jsonify({"error": str(e)}), 404


@bp.route("/health", methods=["GET"])
def health():
    # 健康检查
    return jsonify({"status": "ok"})


@bp.route("", methods=["PUT", "POST"])
def start_run():
    """提交一次爬取运行，立即返回 run_id"""
    data = request.get_json(silent=True)
    if data is None:
        return jsonify({"error": "请求体必须是JSON对象"}), 400

    config = RunConfig.from_dict(data)
    run_id = _service().start_run(config)
    return jsonify({"run_id": run_id}), 202


@bp.route("/cancel/<run_id>", methods=["POST"])
def cancel_run(run_id):
    _service().cancel_run(run_id)
    return jsonify(_service().get_run_status(run_id))


@bp.route("/status/<run_id>", methods=["GET"])
def get_status(run_id):
    return jsonify(_service().get_run_status(run_id))


@bp.route("/runs", methods=["GET"])
def list_runs():
    return jsonify({"runs": _service().list_runs()})


@bp.route("/logs/<run_id>", methods=["GET"])
def get_logs(run_id):
    """
    获取运行的业务日志

    查询参数:
        last_n: 最近N条
        level: 只返回指定级别 (INFO/SUCCESS/WARNING/ERROR/DEBUG)
    """
    # 未知运行返回 404
    _service().get_run_status(run_id)

    handler = _logging_handler()
    if handler is None:
        return jsonify({"run_id": run_id, "logs": []})

    level = request.args.get("level")
    if level:
        logs = handler.get_logs_by_level(run_id, level.upper())
    else:
        logs = handler.get_logs(run_id, last_n=request.args.get("last_n", type=int))

    return jsonify({
        "run_id": run_id,
        "logs": logs,
        "has_errors": handler.has_errors(run_id)
    })
