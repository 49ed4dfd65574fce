"""Self-contained single-page HTML shell for the dashboard JSON API."""

from __future__ import annotations


def get_dashboard_html() -> str:
    """Return the full self-contained HTML page for the dashboard."""
    return _DASHBOARD_HTML


_DASHBOARD_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>opsdash</title>
<style>
  body { font-family: system-ui, sans-serif; margin: 0; display: flex; min-height: 100vh; background: #f6f7f9; color: #1f2933; }
  nav { width: 220px; background: #1f2933; color: #e4e7eb; padding: 1rem 0; }
  nav a { display: block; padding: .4rem 1rem; color: inherit; text-decoration: none; cursor: pointer; }
  nav a.active { background: #3e4c59; }
  main { flex: 1; padding: 1.5rem; overflow: auto; }
  table { border-collapse: collapse; width: 100%; background: #fff; }
  th, td { text-align: left; padding: .35rem .5rem; border-bottom: 1px solid #e4e7eb; font-size: .85rem; vertical-align: top; }
  .bar { display: flex; gap: .5rem; margin-bottom: 1rem; flex-wrap: wrap; align-items: center; }
  .error { background: #fde8e8; color: #9b1c1c; padding: .6rem; border-radius: 4px; margin-bottom: 1rem; }
  .card { background: #fff; padding: 1rem; border-radius: 6px; margin-bottom: 1rem; }
  #login { margin: 15vh auto; width: 280px; }
  #login input { width: 100%; margin-bottom: .5rem; padding: .4rem; box-sizing: border-box; }
  pre { white-space: pre-wrap; margin: 0; }
</style>
</head>
<body>
<div id="login" class="card" hidden>
  <h3>opsdash</h3>
  <div id="login-error" class="error" hidden></div>
  <input id="username" placeholder="Username" autocomplete="username">
  <input id="password" placeholder="Password" type="password" autocomplete="current-password">
  <button id="login-btn">Sign in</button>
</div>
<nav id="nav" hidden></nav>
<main id="main" hidden>
  <div class="bar"><h2 id="title"></h2><button id="logout-btn">Sign out</button></div>
  <div id="error" class="error" hidden></div>
  <div id="content"></div>
</main>
<script>
const SECTIONS = ["interactions", "email", "linkedin", "call", "cold-email", "followup-email",
  "send-linkedin-connection-req", "send-linkedin-message", "view-linkedin-profile",
  "comment-on-linkedin-post", "send-linkedin-connection-req-with-note",
  "queues", "research", "redis-logs", "log-insights"];
let cfg = null, section = "interactions", page = 1, timer = null;

async function api(path, opts) {
  const r = await fetch(path, Object.assign({headers: {"Content-Type": "application/json"}}, opts || {}));
  const body = await r.json().catch(() => ({}));
  if (r.status === 401 && path !== "/api/login") { showLogin(); throw new Error("Not authenticated"); }
  if (!r.ok) throw new Error(body.error || ("HTTP " + r.status));
  return body;
}
function esc(s) { return String(s ?? "").replace(/[&<>"]/g, c => ({"&":"&amp;","<":"&lt;",">":"&gt;",'"':"&quot;"}[c])); }
function showError(msg) { const e = document.getElementById("error"); e.textContent = msg || ""; e.hidden = !msg; }
function table(cols, rows) {
  return "<table><tr>" + cols.map(c => "<th>" + esc(c[0]) + "</th>").join("") + "</tr>" +
    rows.map(r => "<tr>" + cols.map(c => "<td>" + c[1](r) + "</td>").join("") + "</tr>").join("") + "</table>";
}
function pager(p, total) {
  return '<div class="bar"><button onclick="go(' + (p - 1) + ')"' + (p <= 1 ? " disabled" : "") + '>Prev</button>' +
    "<span>Page " + p + " / " + Math.max(total, 1) + "</span>" +
    '<button onclick="go(' + (p + 1) + ')"' + (p >= total ? " disabled" : "") + ">Next</button></div>";
}
function go(p) { page = p; render(); }

function showLogin() {
  clearInterval(timer);
  document.getElementById("login").hidden = false;
  document.getElementById("nav").hidden = true;
  document.getElementById("main").hidden = true;
}
async function showApp() {
  cfg = await api("/api/config");
  document.getElementById("login").hidden = true;
  document.getElementById("nav").hidden = false;
  document.getElementById("main").hidden = false;
  document.getElementById("nav").innerHTML = SECTIONS.map(s =>
    '<a data-s="' + s + '">' + esc(cfg.sectionTitles[s] || s) + "</a>").join("");
  document.querySelectorAll("nav a").forEach(a => a.onclick = () => { section = a.dataset.s; page = 1; render(); });
  render();
}

async function render() {
  clearInterval(timer);
  showError("");
  document.querySelectorAll("nav a").forEach(a => a.classList.toggle("active", a.dataset.s === section));
  document.getElementById("title").textContent = cfg.sectionTitles[section] || "Interactions";
  const content = document.getElementById("content");
  try {
    if (section === "queues") {
      const q = await api("/api/queue");
      content.innerHTML = "<p>Total items: " + q.total + "</p>" + table(
        [["User", g => esc(g.userName) + "<br><small>" + esc(g.userEmail) + "</small>"],
         ["Pending", g => g.stats.pending], ["Active", g => g.stats.active],
         ["Completed", g => g.stats.completed], ["Total", g => g.stats.total]], q.groups);
      timer = setInterval(render, cfg.pollSeconds.queue * 1000);
    } else if (section === "research") {
      const r = (await api("/api/research?refresh=true")).current;
      const rows = [["Contacts", r.contacts], ["Websites", r.websites],
        ["LinkedIn profiles", r.linkedinProfiles], ["Company profiles", r.companyProfiles]];
      content.innerHTML = table([["Table", x => x[0]], ["Total", x => x[1].total],
        ["New since last fetch", x => x[1].newSinceLastFetch]], rows) +
        "<p>Researched contacts: " + r.contacts.researched + " (+" + r.contacts.newResearchedSinceLastFetch + ")</p>";
      timer = setInterval(render, cfg.pollSeconds.research * 1000);
    } else if (section === "redis-logs") {
      const l = await api("/api/logs?page=" + page);
      content.innerHTML = "<p>" + l.total + " logs</p>" + table(
        [["Time", x => esc(x.timestamp)], ["Category", x => esc(x.category)],
         ["Type", x => esc(x.type)], ["Message", x => "<pre>" + esc(x.message) + "</pre>"]], l.items) +
        pager(l.page, l.totalPages);
    } else if (section === "log-insights") {
      const i = await api("/api/insights");
      content.innerHTML = Object.entries(i.insights).map(([cat, a]) =>
        '<div class="card"><h3>' + esc(cat) + " (" + esc(a.severity) + ")</h3>" + table(
          [["Summary", e => esc(e.summary)], ["Root cause", e => esc(e.rootCause)],
           ["Location", e => esc(e.sourceLocation)], ["Fix", e => esc(e.suggestedFix)],
           ["Severity", e => esc(e.severity)]], a.errors) + "</div>").join("") || "<p>No logs to analyze.</p>";
      timer = setInterval(render, cfg.pollSeconds.insights * 1000);
    } else {
      const d = await api("/api/interactions?section=" + encodeURIComponent(section) + "&page=" + page);
      document.getElementById("title").textContent = d.title + " (" + d.totalCount + ")";
      content.innerHTML = table(
        [["Created", x => esc(x.created_at)], ["Type", x => esc(x.type)],
         ["Action", x => esc(x.action)], ["User", x => esc(x.user_id)]], d.items) +
        pager(d.page, d.totalPages);
    }
  } catch (e) { showError(e.message); }
}

document.getElementById("login-btn").onclick = async () => {
  const err = document.getElementById("login-error");
  try {
    await api("/api/login", {method: "POST", body: JSON.stringify({
      username: document.getElementById("username").value,
      password: document.getElementById("password").value})});
    err.hidden = true;
    showApp();
  } catch (e) { err.textContent = "Invalid credentials"; err.hidden = false; }
};
document.getElementById("logout-btn").onclick = async () => { await api("/api/logout", {method: "POST"}); showLogin(); };
api("/api/session").then(s => s.authenticated ? showApp() : showLogin());
</script>
</body>
</html>
"""
